"""
knowledge: ingestion and retrieval core of a knowledge-base pipeline.

Documents are loaded by file type, split, transformed, embedded and stored
in a vector database; similarity queries are answered by the store.
"""

__version__ = "0.1.0"
