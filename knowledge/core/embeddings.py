"""
Embedding model providers.

Every provider wraps one LangChain Embeddings backend (OpenAI, Ollama,
HuggingFace) behind the EmbeddingModelProvider contract:

- configure() validates provider settings and must succeed before use
- embedding_func() hands out an async batch embedding function bound to an
  immutable snapshot of the backend
- use_embedding_model() switches the model and drops the cached backend

Providers are selected by name with get_embedding_provider().
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Any, ClassVar

import httpx
import openai
from langchain_core.embeddings import Embeddings
from langchain_openai import OpenAIEmbeddings
from pydantic import BaseModel, Field, SecretStr

from knowledge.config.settings import EmbeddingSettings
from knowledge.core.types import EmbeddingFunc
from knowledge.utils.exceptions import (
    EmbeddingConnectionError,
    EmbeddingError,
    EmbeddingGenerationError,
    InvalidConfigurationError,
    MissingConfigurationError,
    ProviderNotConfiguredError,
)
from knowledge.utils.logging import LoggerMixin, get_logger

logger = get_logger(__name__)


class OpenAIEmbeddingConfig(BaseModel):
    """Settings for OpenAI and OpenAI-compatible embedding APIs."""

    api_key: SecretStr = SecretStr("")
    base_url: str = ""
    model: str = "text-embedding-3-small"
    dimensions: int | None = Field(default=None, ge=1)


class OllamaEmbeddingConfig(BaseModel):
    """Settings for a local or remote Ollama server."""

    base_url: str = "http://localhost:11434"
    model: str = "nomic-embed-text"


class HuggingFaceEmbeddingConfig(BaseModel):
    """Settings for sentence-transformers models run in-process."""

    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    device: str = "cpu"


class EmbeddingModelProvider(LoggerMixin, ABC):
    """
    Base class for embedding providers.

    Subclasses declare a stable ``name``, validate their configuration in
    ``_validate`` and build the LangChain backend in ``_build_embeddings``.

    Configuration changes and embedding_func() calls are serialized by a
    lock. The function returned by embedding_func() keeps using the backend
    it was created with, so switching models never alters a call in flight.

    Example:
        >>> provider = OpenAIEmbeddingProvider(OpenAIEmbeddingConfig(api_key="sk-..."))
        >>> provider.configure()
        >>> embed = provider.embedding_func()
        >>> vectors = await embed(["hello", "world"])
    """

    name: ClassVar[str]
    config_class: ClassVar[type[BaseModel]]

    def __init__(self, config: BaseModel | None = None) -> None:
        self._config = config if config is not None else self.config_class()
        self._configured = False
        self._embeddings: Embeddings | None = None
        self._lock = threading.RLock()

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: EmbeddingSettings) -> "EmbeddingModelProvider":
        """Build an unconfigured provider from application settings."""

    @abstractmethod
    def _validate(self) -> None:
        """Raise a ConfigurationError if the current config is unusable."""

    @abstractmethod
    def _build_embeddings(self) -> Embeddings:
        """Create the LangChain backend for the current config."""

    def _is_connection_error(self, exc: Exception) -> bool:
        return isinstance(exc, (ConnectionError, TimeoutError))

    def configure(self) -> None:
        """
        Validate and apply the provider configuration.

        Safe to call again after the configuration changed.

        Raises:
            MissingConfigurationError: A required setting is absent.
            InvalidConfigurationError: A setting has an unusable value.
        """
        with self._lock:
            self._configured = False
            self._embeddings = None
            self._validate()
            self._configured = True

        self.logger.info(
            "embedding_provider_configured",
            provider=self.name,
            model=self.embedding_model_name,
        )

    def config(self) -> BaseModel:
        """Return the active configuration object."""
        return self._config

    @property
    def embedding_model_name(self) -> str:
        """Name of the model used by subsequent embedding_func() calls."""
        return self._config.model  # type: ignore[attr-defined]

    @property
    def is_configured(self) -> bool:
        return self._configured

    def use_embedding_model(self, model: str) -> None:
        """
        Switch the active model.

        Any cached backend is dropped so the next embedding_func() call
        builds one for the new model.
        """
        with self._lock:
            self._config = self._config.model_copy(update={"model": model})
            self._embeddings = None

        self.logger.info("embedding_model_switched", provider=self.name, model=model)

    def embedding_func(self) -> EmbeddingFunc:
        """
        Return an async function embedding a batch of texts.

        Raises:
            ProviderNotConfiguredError: configure() has not succeeded yet.
        """
        with self._lock:
            if not self._configured:
                raise ProviderNotConfiguredError(
                    f"Embedding provider '{self.name}' is not configured",
                    details={"provider": self.name},
                )
            if self._embeddings is None:
                self._embeddings = self._build_embeddings()
            embeddings = self._embeddings
            model = self.embedding_model_name

        provider = self

        async def embed(texts: list[str]) -> list[list[float]]:
            if not texts:
                return []
            try:
                vectors = await embeddings.aembed_documents(list(texts))
            except Exception as e:
                error_cls = (
                    EmbeddingConnectionError
                    if provider._is_connection_error(e)
                    else EmbeddingError
                )
                provider.logger.error(
                    "embedding_failed",
                    provider=provider.name,
                    model=model,
                    batch_size=len(texts),
                    error=str(e),
                )
                raise error_cls(
                    f"Embedding request to '{provider.name}' failed",
                    details={"provider": provider.name, "model": model},
                    cause=e,
                ) from e

            if len(vectors) != len(texts):
                raise EmbeddingGenerationError(
                    "Embedding backend returned a mismatched number of vectors",
                    details={
                        "provider": provider.name,
                        "model": model,
                        "expected": len(texts),
                        "received": len(vectors),
                    },
                )
            return [list(v) for v in vectors]

        return embed


class OpenAIEmbeddingProvider(EmbeddingModelProvider):
    """OpenAI (or OpenAI-compatible) embeddings via langchain-openai."""

    name = "openai"
    config_class = OpenAIEmbeddingConfig

    @classmethod
    def from_settings(cls, settings: EmbeddingSettings) -> "OpenAIEmbeddingProvider":
        config = OpenAIEmbeddingConfig(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            dimensions=settings.openai_dimensions,
        )
        if settings.embedding_model:
            config.model = settings.embedding_model
        return cls(config)

    def _validate(self) -> None:
        config: OpenAIEmbeddingConfig = self._config  # type: ignore[assignment]
        if not config.api_key.get_secret_value():
            raise MissingConfigurationError(
                "OpenAI API key is required for OpenAI embeddings",
                details={"provider": self.name, "setting": "openai_api_key"},
            )
        if not config.model:
            raise MissingConfigurationError(
                "An embedding model name is required",
                details={"provider": self.name, "setting": "embedding_model"},
            )
        if config.base_url and not config.base_url.startswith(("http://", "https://")):
            raise InvalidConfigurationError(
                f"Invalid OpenAI base URL: {config.base_url}",
                details={"provider": self.name, "setting": "openai_base_url"},
            )

    def _build_embeddings(self) -> Embeddings:
        config: OpenAIEmbeddingConfig = self._config  # type: ignore[assignment]
        kwargs: dict[str, Any] = {
            "api_key": config.api_key,
            "model": config.model,
        }
        if config.base_url:
            kwargs["base_url"] = config.base_url
        if config.dimensions is not None:
            kwargs["dimensions"] = config.dimensions

        logger.info("creating_openai_embeddings", model=config.model)
        return OpenAIEmbeddings(**kwargs)

    def _is_connection_error(self, exc: Exception) -> bool:
        return isinstance(exc, openai.APIConnectionError) or super()._is_connection_error(exc)


class OllamaEmbeddingProvider(EmbeddingModelProvider):
    """Ollama embeddings via langchain-ollama."""

    name = "ollama"
    config_class = OllamaEmbeddingConfig

    @classmethod
    def from_settings(cls, settings: EmbeddingSettings) -> "OllamaEmbeddingProvider":
        config = OllamaEmbeddingConfig(base_url=settings.ollama_base_url)
        if settings.embedding_model:
            config.model = settings.embedding_model
        return cls(config)

    def _validate(self) -> None:
        config: OllamaEmbeddingConfig = self._config  # type: ignore[assignment]
        if not config.base_url:
            raise MissingConfigurationError(
                "Ollama base URL is required",
                details={"provider": self.name, "setting": "ollama_base_url"},
            )
        if not config.base_url.startswith(("http://", "https://")):
            raise InvalidConfigurationError(
                f"Invalid Ollama base URL: {config.base_url}",
                details={"provider": self.name, "setting": "ollama_base_url"},
            )
        if not config.model:
            raise MissingConfigurationError(
                "An embedding model name is required",
                details={"provider": self.name, "setting": "embedding_model"},
            )

    def _build_embeddings(self) -> Embeddings:
        try:
            from langchain_ollama import OllamaEmbeddings
        except ImportError:
            raise ImportError(
                "langchain-ollama is not installed. "
                "Install it with: pip install langchain-ollama"
            )

        config: OllamaEmbeddingConfig = self._config  # type: ignore[assignment]
        logger.info("creating_ollama_embeddings", model=config.model, base_url=config.base_url)
        return OllamaEmbeddings(model=config.model, base_url=config.base_url)

    def _is_connection_error(self, exc: Exception) -> bool:
        # the ollama client surfaces httpx transport errors unwrapped
        return isinstance(
            exc, (httpx.ConnectError, httpx.TimeoutException)
        ) or super()._is_connection_error(exc)


class HuggingFaceEmbeddingProvider(EmbeddingModelProvider):
    """Local sentence-transformers embeddings via langchain-huggingface."""

    name = "huggingface"
    config_class = HuggingFaceEmbeddingConfig

    @classmethod
    def from_settings(cls, settings: EmbeddingSettings) -> "HuggingFaceEmbeddingProvider":
        config = HuggingFaceEmbeddingConfig(device=settings.huggingface_device)
        if settings.embedding_model:
            config.model = settings.embedding_model
        return cls(config)

    def _validate(self) -> None:
        config: HuggingFaceEmbeddingConfig = self._config  # type: ignore[assignment]
        if not config.model:
            raise MissingConfigurationError(
                "A HuggingFace model name is required",
                details={"provider": self.name, "setting": "embedding_model"},
            )

    def _build_embeddings(self) -> Embeddings:
        try:
            from langchain_huggingface import HuggingFaceEmbeddings
        except ImportError:
            raise ImportError(
                "langchain-huggingface is not installed. "
                "Install it with: pip install langchain-huggingface"
            )

        config: HuggingFaceEmbeddingConfig = self._config  # type: ignore[assignment]
        logger.info("creating_huggingface_embeddings", model_name=config.model)
        return HuggingFaceEmbeddings(
            model_name=config.model,
            model_kwargs={"device": config.device},
        )


EMBEDDING_PROVIDERS: dict[str, type[EmbeddingModelProvider]] = {
    OpenAIEmbeddingProvider.name: OpenAIEmbeddingProvider,
    OllamaEmbeddingProvider.name: OllamaEmbeddingProvider,
    HuggingFaceEmbeddingProvider.name: HuggingFaceEmbeddingProvider,
}


def get_embedding_provider(
    name: str | None = None,
    settings: EmbeddingSettings | None = None,
) -> EmbeddingModelProvider:
    """
    Select an embedding provider by name.

    The provider is returned unconfigured; call configure() before use.

    Args:
        name: Provider name. Defaults to settings.embedding_provider.
        settings: Optional embedding settings. If None, loads from environment.

    Raises:
        InvalidConfigurationError: The name is not a known provider.
    """
    if settings is None:
        from knowledge.config.settings import get_settings

        settings = get_settings().embedding

    provider_name = (name or settings.embedding_provider).lower()
    provider_cls = EMBEDDING_PROVIDERS.get(provider_name)
    if provider_cls is None:
        raise InvalidConfigurationError(
            f"Unsupported embedding provider: {provider_name}. "
            f"Supported providers: {', '.join(sorted(EMBEDDING_PROVIDERS))}",
            details={"provider": provider_name},
        )

    logger.info("creating_embedding_provider", provider=provider_name)
    return provider_cls.from_settings(settings)
