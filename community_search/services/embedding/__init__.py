"""Embedding generation: text composition, provider client and batch job."""

from community_search.services.embedding.batch_job import (
    BatchEmbeddingJob,
    BatchJobReport,
    BatchJobState,
    FailureEntry,
    JobCheckpoint,
)
from community_search.services.embedding.client import (
    EmbeddingClient,
    get_embedding_client,
)
from community_search.services.embedding.composer import clean_html, compose_record_text
from community_search.services.embedding.scheduler import BackoffPolicy, BatchScheduler
from community_search.services.embedding.types import (
    MODEL_DIMENSIONS,
    EmbeddingResult,
    model_dimensions,
)

__all__ = [
    "BackoffPolicy",
    "BatchEmbeddingJob",
    "BatchJobReport",
    "BatchJobState",
    "BatchScheduler",
    "EmbeddingClient",
    "EmbeddingResult",
    "FailureEntry",
    "JobCheckpoint",
    "MODEL_DIMENSIONS",
    "clean_html",
    "compose_record_text",
    "get_embedding_client",
    "model_dimensions",
]
