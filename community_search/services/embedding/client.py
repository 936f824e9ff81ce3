"""Embedding client wrapping the OpenAI embeddings API."""

import time
from functools import lru_cache
from typing import Any, List, Optional, Sequence

import openai
from loguru import logger
from openai import AsyncOpenAI

from community_search.exceptions import (
    CommunitySearchError,
    InvalidInputError,
    MissingCredentialsError,
    NoValidInputError,
    ProviderError,
)
from community_search.services.embedding.composer import compose_record_text
from community_search.services.embedding.types import EmbeddingResult, model_dimensions
from community_search.services.vector_db.types import Embedding, Record
from community_search.settings import settings

# Errors worth retrying at the batch-job level
TRANSIENT_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class EmbeddingClient:
    """
    Client for generating embeddings with OpenAI.

    The provider connection is created once by :meth:`initialize` (called
    lazily on first use) and reused afterwards. Retries are left to the
    batch job, so the SDK's own retries are disabled.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = settings.openai_embedding_model,
        timeout: float = settings.embedding_timeout,
        base_url: Optional[str] = settings.openai_base_url,
        openai_client: Optional[Any] = None,
    ):
        """
        Initialize the embedding client.

        :param api_key: OpenAI API key (defaults to settings)
        :param model: embedding model identifier
        :param timeout: per-request timeout in seconds
        :param base_url: optional OpenAI-compatible endpoint
        :param openai_client: pre-built AsyncOpenAI-compatible client
        """
        self.api_key = api_key or settings.openai_api_key
        self.model = model
        self.timeout = timeout
        self.base_url = base_url
        self._client = openai_client
        self.metrics = {
            "embedding_calls": 0,
            "embedding_errors": 0,
            "total_processing_time": 0.0,
        }

    @property
    def dimensions(self) -> Optional[int]:
        """Return the embedding dimension size of the configured model."""
        return model_dimensions(self.model)

    def initialize(self) -> None:
        """
        Create the provider connection.

        :raises MissingCredentialsError: if no API key is configured
        """
        if self._client is not None:
            return
        if not self.api_key:
            raise MissingCredentialsError()
        self._client = AsyncOpenAI(
            api_key=self.api_key,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=0,
        )
        logger.info(f"Initialized embedding client with model: {self.model}")

    def _get_client(self) -> Any:
        if self._client is None:
            self.initialize()
        return self._client

    async def close(self) -> None:
        """Release the HTTP connection pool."""
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()

    def _track_metric(self, metric_name: str, increment: float = 1) -> None:
        self.metrics[metric_name] = self.metrics.get(metric_name, 0) + increment

    async def _create(self, inputs: Any) -> List[List[float]]:
        client = self._get_client()
        self._track_metric("embedding_calls")
        start_time = time.time()
        try:
            response = await client.embeddings.create(
                model=self.model,
                input=inputs,
                encoding_format="float",
            )
        except openai.OpenAIError as e:
            self._track_metric("embedding_errors")
            logger.error(f"Error generating embedding: {e}")
            raise ProviderError(
                f"Embedding request failed: {e}",
                model=self.model,
                transient=isinstance(e, TRANSIENT_ERRORS),
            ) from e
        finally:
            self._track_metric("total_processing_time", time.time() - start_time)

        data = sorted(response.data, key=lambda item: item.index)
        vectors = [list(item.embedding) for item in data]
        expected = self.dimensions
        for vector in vectors:
            if expected is not None and len(vector) != expected:
                raise ProviderError(
                    f"Model {self.model} returned {len(vector)} dimensions, expected {expected}",
                    model=self.model,
                )
        return vectors

    async def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        :param text: text to embed
        :returns: vector of the model's dimensionality
        :raises InvalidInputError: on empty or non-string input
        :raises ProviderError: on any provider failure
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError()

        vectors = await self._create(text)
        logger.debug(f"Generated embedding ({len(vectors[0])} dimensions)")
        return vectors[0]

    async def embed_texts(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in one request.

        Blank entries are dropped before the call; the output is aligned
        with the remaining texts, not with the input list.

        :param texts: texts to embed
        :returns: one vector per non-blank text
        :raises NoValidInputError: if nothing embeddable remains
        """
        if isinstance(texts, str) or not isinstance(texts, (list, tuple)):
            raise InvalidInputError("Texts input is required and must be a list")

        valid_texts = [t for t in texts if isinstance(t, str) and t.strip()]
        if not valid_texts:
            raise NoValidInputError()

        dropped = len(texts) - len(valid_texts)
        if dropped:
            logger.debug(f"Dropped {dropped} blank texts from batch")
        return await self._create(valid_texts)

    async def embed_record(self, record: Record) -> Embedding:
        """
        Compose a record's text and embed it.

        :param record: service record
        :returns: vector tagged with the model used
        :raises ComposeError: if the record has no usable text
        """
        text = compose_record_text(record)
        logger.debug(f"Generating embedding for service {record.id} ({len(text)} chars)")
        vector = await self.embed_text(text)
        return Embedding(vector=vector, model=self.model)

    async def embed_headline(self, headline: Optional[str]) -> EmbeddingResult:
        """
        Best-effort embedding for an optional headline.

        :param headline: headline text
        :returns: Ok(vector) or Err(reason), never raises for bad input or provider errors
        """
        if not isinstance(headline, str) or not headline.strip():
            return EmbeddingResult.err("Headline is empty")
        try:
            return EmbeddingResult.ok(await self.embed_text(headline.strip()))
        except CommunitySearchError as e:
            logger.warning(f"Error generating headline embedding: {e.message}")
            return EmbeddingResult.err(e.message)

    def get_metrics(self) -> dict:
        """Get the current performance metrics."""
        logger.debug(f"EmbeddingClient metrics: {self.metrics}")
        return self.metrics


@lru_cache()
def get_embedding_client() -> EmbeddingClient:
    """
    Get the shared embedding client.

    :returns: EmbeddingClient instance
    """
    return EmbeddingClient(
        api_key=settings.openai_api_key,
        model=settings.openai_embedding_model,
        timeout=settings.embedding_timeout,
        base_url=settings.openai_base_url,
    )
