"""
Embedder - Batched embedding providers

An embedding function has the shape ``(model, texts) -> vectors``: one call
per batch, output order matching input order. Two providers are available:

- OpenAIEmbedder: OpenAI embeddings API (default text-embedding-3-small)
- OllamaEmbedder: local Ollama server (e.g. nomic-embed-text)

Providers never retry or swallow failures; any error surfaces as
EmbeddingError so the indexer can roll back the current page.
"""

import logging
from typing import Callable, List, Optional, Sequence

from kb_rag.config import EmbeddingConfig
from kb_rag.exceptions import ConfigurationError, EmbeddingError

logger = logging.getLogger(__name__)

EmbeddingFunction = Callable[[str, List[str]], List[List[float]]]


def validate_embeddings(texts: Sequence[str], embeddings: Sequence[Sequence[float]]) -> List[List[float]]:
    """
    Check that a provider response lines up with its request

    Raises:
        EmbeddingError: On count mismatch, empty vectors, or unequal lengths
    """
    if len(embeddings) != len(texts):
        raise EmbeddingError(
            f"Embedding count mismatch: {len(texts)} inputs vs {len(embeddings)} vectors"
        )
    vectors = [list(e) for e in embeddings]
    dimensions = {len(v) for v in vectors}
    if 0 in dimensions:
        raise EmbeddingError("Embedding provider returned an empty vector")
    if len(dimensions) > 1:
        raise EmbeddingError(f"Embedding provider returned mixed dimensions: {sorted(dimensions)}")
    return vectors


class BaseEmbedder:
    """Shared bookkeeping for embedding providers"""

    provider = "base"

    def __init__(self, model: str):
        self.model = model
        self.embedding_count = 0
        self.request_count = 0

    def _embed(self, model: str, texts: List[str]) -> Sequence[Sequence[float]]:
        raise NotImplementedError

    def __call__(self, model: str, texts: List[str]) -> List[List[float]]:
        return self.embed_batch(texts, model=model)

    def embed_batch(self, texts: List[str], model: Optional[str] = None) -> List[List[float]]:
        """
        Embed a batch of texts in a single provider call

        Args:
            texts: Ordered batch of input strings
            model: Model override (defaults to the embedder's model)

        Returns:
            One vector per input, in input order
        """
        if not texts:
            return []
        model = model or self.model
        try:
            raw = self._embed(model, list(texts))
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(f"{self.provider} embedding request failed: {e}")
            raise EmbeddingError(f"{self.provider} embedding request failed: {e}") from e

        vectors = validate_embeddings(texts, raw)
        self.request_count += 1
        self.embedding_count += len(vectors)
        return vectors

    def embed(self, text: str) -> List[float]:
        """Embed a single text (used for search queries)"""
        return self.embed_batch([text])[0]

    def get_stats(self):
        return {
            'provider': self.provider,
            'model': self.model,
            'requests': self.request_count,
            'total_embeddings': self.embedding_count
        }


class OpenAIEmbedder(BaseEmbedder):
    """Embeddings via the OpenAI API"""

    provider = "openai"

    def __init__(self, api_key: str, model: str = "text-embedding-3-small", client=None):
        super().__init__(model)
        if client is None:
            from openai import OpenAI
            client = OpenAI(api_key=api_key)
        self.client = client

    def _embed(self, model: str, texts: List[str]) -> Sequence[Sequence[float]]:
        response = self.client.embeddings.create(model=model, input=texts)
        # The API may return items out of order; index restores request order
        items = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in items]


class OllamaEmbedder(BaseEmbedder):
    """Embeddings via a local Ollama server"""

    provider = "ollama"

    def __init__(self, model: str = "nomic-embed-text", host: Optional[str] = None, client=None):
        super().__init__(model)
        if client is None:
            import ollama
            client = ollama.Client(host=host) if host else ollama.Client()
        self.client = client

    def _embed(self, model: str, texts: List[str]) -> Sequence[Sequence[float]]:
        response = self.client.embed(model=model, input=texts)
        return response['embeddings']


def create_embedder(config: EmbeddingConfig) -> BaseEmbedder:
    """
    Build the embedding provider named in the configuration

    Raises:
        ConfigurationError: If the provider is unknown or lacks credentials
    """
    if config.provider == "openai":
        if not config.api_key:
            raise ConfigurationError("OpenAI embeddings require an API key")
        return OpenAIEmbedder(api_key=config.api_key, model=config.model)
    if config.provider == "ollama":
        return OllamaEmbedder(model=config.model, host=config.host)
    raise ConfigurationError(f"Unknown embedding provider: {config.provider}")
