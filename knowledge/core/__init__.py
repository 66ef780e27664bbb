"""Core contracts: data model, embedding providers and stores."""
