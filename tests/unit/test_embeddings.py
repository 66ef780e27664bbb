"""
Tests for embedding model providers.

Uses pytest for unit tests and mocks external embedding backends.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest
from pydantic import SecretStr

from knowledge.config.settings import EmbeddingSettings
from knowledge.core.embeddings import (
    EMBEDDING_PROVIDERS,
    HuggingFaceEmbeddingProvider,
    OllamaEmbeddingConfig,
    OllamaEmbeddingProvider,
    OpenAIEmbeddingConfig,
    OpenAIEmbeddingProvider,
    get_embedding_provider,
)
from knowledge.utils.exceptions import (
    EmbeddingConnectionError,
    EmbeddingError,
    EmbeddingGenerationError,
    InvalidConfigurationError,
    MissingConfigurationError,
    ProviderNotConfiguredError,
)
from tests.fakes import EMBEDDING_SIZE, FakeEmbeddingProvider


def backend_returning(vectors=None, error=None) -> MagicMock:
    """Create a mock LangChain Embeddings backend."""
    backend = MagicMock()
    backend.aembed_documents = AsyncMock(return_value=vectors, side_effect=error)
    return backend


class TestProviderLifecycle:
    """Tests for configure / embedding_func / use_embedding_model."""

    def test_embedding_func_requires_configure(self) -> None:
        provider = FakeEmbeddingProvider()

        with pytest.raises(ProviderNotConfiguredError):
            provider.embedding_func()

    def test_configure_marks_configured(self) -> None:
        provider = FakeEmbeddingProvider()
        assert provider.is_configured is False

        provider.configure()

        assert provider.is_configured is True
        assert provider.embedding_model_name == "fake-embedding"

    def test_failed_configure_leaves_provider_unconfigured(self) -> None:
        provider = OpenAIEmbeddingProvider(OpenAIEmbeddingConfig(api_key=SecretStr("")))

        with pytest.raises(MissingConfigurationError):
            provider.configure()

        assert provider.is_configured is False
        with pytest.raises(ProviderNotConfiguredError):
            provider.embedding_func()

    @pytest.mark.asyncio
    async def test_embedding_func_returns_one_vector_per_text(
        self,
        fake_provider: FakeEmbeddingProvider,
    ) -> None:
        embed = fake_provider.embedding_func()

        vectors = await embed(["alpha", "beta", "gamma"])

        assert len(vectors) == 3
        assert all(len(v) == EMBEDDING_SIZE for v in vectors)

    @pytest.mark.asyncio
    async def test_embedding_func_is_deterministic(
        self,
        fake_provider: FakeEmbeddingProvider,
    ) -> None:
        embed = fake_provider.embedding_func()
        assert await embed(["same"]) == await embed(["same"])

    @pytest.mark.asyncio
    async def test_empty_batch_skips_backend(self) -> None:
        provider = FakeEmbeddingProvider()
        provider.configure()
        backend = backend_returning(vectors=[])

        with patch.object(provider, "_build_embeddings", return_value=backend):
            embed = provider.embedding_func()
            assert await embed([]) == []

        backend.aembed_documents.assert_not_called()

    def test_backend_is_cached(self, fake_provider: FakeEmbeddingProvider) -> None:
        fake_provider.embedding_func()
        fake_provider.embedding_func()
        assert fake_provider.builds == 1

    def test_use_embedding_model_invalidates_backend(
        self,
        fake_provider: FakeEmbeddingProvider,
    ) -> None:
        fake_provider.embedding_func()

        fake_provider.use_embedding_model("fake-embedding-v2")
        fake_provider.embedding_func()

        assert fake_provider.embedding_model_name == "fake-embedding-v2"
        assert fake_provider.config().model == "fake-embedding-v2"
        assert fake_provider.builds == 2

    @pytest.mark.asyncio
    async def test_switch_does_not_affect_existing_function(self) -> None:
        provider = FakeEmbeddingProvider()
        provider.configure()
        first_backend = backend_returning(vectors=[[1.0]])
        second_backend = backend_returning(vectors=[[2.0]])

        with patch.object(provider, "_build_embeddings", side_effect=[first_backend, second_backend]):
            embed_before = provider.embedding_func()
            provider.use_embedding_model("other")
            embed_after = provider.embedding_func()

        assert await embed_before(["x"]) == [[1.0]]
        assert await embed_after(["x"]) == [[2.0]]


class TestEmbeddingErrors:
    """Tests for backend error mapping."""

    @pytest.mark.asyncio
    async def test_count_mismatch(self) -> None:
        provider = FakeEmbeddingProvider()
        provider.configure()

        with patch.object(provider, "_build_embeddings", return_value=backend_returning(vectors=[[0.1]])):
            embed = provider.embedding_func()

        with pytest.raises(EmbeddingGenerationError) as exc_info:
            await embed(["a", "b"])

        assert exc_info.value.details["expected"] == 2
        assert exc_info.value.details["received"] == 1

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        provider = FakeEmbeddingProvider()
        provider.configure()
        backend = backend_returning(error=ConnectionError("refused"))

        with patch.object(provider, "_build_embeddings", return_value=backend):
            embed = provider.embedding_func()

        with pytest.raises(EmbeddingConnectionError) as exc_info:
            await embed(["a"])

        assert isinstance(exc_info.value.cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_other_backend_error(self) -> None:
        provider = FakeEmbeddingProvider()
        provider.configure()
        backend = backend_returning(error=RuntimeError("bad response"))

        with patch.object(provider, "_build_embeddings", return_value=backend):
            embed = provider.embedding_func()

        with pytest.raises(EmbeddingError) as exc_info:
            await embed(["a"])

        assert not isinstance(exc_info.value, EmbeddingConnectionError)

    def test_openai_connection_error_is_recognized(self) -> None:
        provider = OpenAIEmbeddingProvider()
        error = openai.APIConnectionError(request=MagicMock())
        assert provider._is_connection_error(error) is True
        assert provider._is_connection_error(ValueError("x")) is False

    @pytest.mark.asyncio
    async def test_unreachable_ollama_is_a_connection_error(self) -> None:
        provider = OllamaEmbeddingProvider(OllamaEmbeddingConfig(model="nomic-embed-text"))
        provider.configure()
        backend = backend_returning(error=httpx.ConnectError("connection refused"))

        with patch.object(provider, "_build_embeddings", return_value=backend):
            embed = provider.embedding_func()

        with pytest.raises(EmbeddingConnectionError) as exc_info:
            await embed(["a"])

        assert exc_info.value.details["provider"] == "ollama"
        assert isinstance(exc_info.value.cause, httpx.ConnectError)


class TestOpenAIEmbeddingProvider:
    """Tests for the OpenAI provider."""

    def test_requires_api_key(self) -> None:
        provider = OpenAIEmbeddingProvider()
        with pytest.raises(MissingConfigurationError, match="OpenAI API key is required"):
            provider.configure()

    def test_rejects_invalid_base_url(self) -> None:
        provider = OpenAIEmbeddingProvider(
            OpenAIEmbeddingConfig(api_key=SecretStr("sk-test"), base_url="localhost:1234")
        )
        with pytest.raises(InvalidConfigurationError):
            provider.configure()

    def test_builds_openai_embeddings(self) -> None:
        provider = OpenAIEmbeddingProvider(
            OpenAIEmbeddingConfig(
                api_key=SecretStr("sk-test"),
                base_url="https://llm.example.com/v1",
                model="text-embedding-3-large",
                dimensions=256,
            )
        )
        provider.configure()

        with patch("knowledge.core.embeddings.OpenAIEmbeddings") as mock_openai:
            provider.embedding_func()

        kwargs = mock_openai.call_args.kwargs
        assert kwargs["model"] == "text-embedding-3-large"
        assert kwargs["base_url"] == "https://llm.example.com/v1"
        assert kwargs["dimensions"] == 256
        assert kwargs["api_key"].get_secret_value() == "sk-test"

    def test_from_settings(self) -> None:
        settings = EmbeddingSettings(
            embedding_provider="openai",
            embedding_model="text-embedding-ada-002",
            openai_api_key=SecretStr("sk-test"),
        )

        provider = OpenAIEmbeddingProvider.from_settings(settings)

        assert provider.embedding_model_name == "text-embedding-ada-002"
        assert provider.is_configured is False

    def test_from_settings_keeps_default_model(self) -> None:
        settings = EmbeddingSettings(embedding_model="", openai_api_key=SecretStr("sk-test"))
        provider = OpenAIEmbeddingProvider.from_settings(settings)
        assert provider.embedding_model_name == "text-embedding-3-small"


class TestOptionalProviders:
    """Tests for providers backed by optional packages."""

    def test_ollama_backend(self) -> None:
        mock_ollama_class = MagicMock()
        provider = OllamaEmbeddingProvider(OllamaEmbeddingConfig(model="llama2"))
        provider.configure()

        with patch.dict("sys.modules", {"langchain_ollama": MagicMock(OllamaEmbeddings=mock_ollama_class)}):
            provider.embedding_func()

        mock_ollama_class.assert_called_once_with(model="llama2", base_url="http://localhost:11434")

    def test_ollama_rejects_invalid_url(self) -> None:
        provider = OllamaEmbeddingProvider(OllamaEmbeddingConfig(base_url="ollama:11434"))
        with pytest.raises(InvalidConfigurationError):
            provider.configure()

    def test_huggingface_backend(self) -> None:
        mock_hf_class = MagicMock()
        provider = HuggingFaceEmbeddingProvider()
        provider.configure()

        with patch.dict("sys.modules", {"langchain_huggingface": MagicMock(HuggingFaceEmbeddings=mock_hf_class)}):
            provider.embedding_func()

        mock_hf_class.assert_called_once_with(
            model_name="sentence-transformers/all-MiniLM-L6-v2",
            model_kwargs={"device": "cpu"},
        )


class TestGetEmbeddingProvider:
    """Tests for provider selection by name."""

    def test_registered_names(self) -> None:
        assert set(EMBEDDING_PROVIDERS) == {"openai", "ollama", "huggingface"}

    @pytest.mark.parametrize(
        "name,provider_cls",
        [
            ("openai", OpenAIEmbeddingProvider),
            ("OLLAMA", OllamaEmbeddingProvider),
            ("huggingface", HuggingFaceEmbeddingProvider),
        ],
    )
    def test_select_by_name(self, name: str, provider_cls: type) -> None:
        provider = get_embedding_provider(name, settings=EmbeddingSettings())
        assert isinstance(provider, provider_cls)
        assert provider.is_configured is False

    def test_defaults_to_settings_provider(self) -> None:
        settings = EmbeddingSettings(embedding_provider="ollama")
        assert isinstance(get_embedding_provider(settings=settings), OllamaEmbeddingProvider)

    def test_unknown_provider(self) -> None:
        with pytest.raises(InvalidConfigurationError, match="Unsupported embedding provider"):
            get_embedding_provider("cohere", settings=EmbeddingSettings())
