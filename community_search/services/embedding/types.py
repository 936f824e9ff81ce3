"""Types for the embedding services."""

from dataclasses import dataclass
from typing import Dict, List, Optional

# Output dimensionality of the supported OpenAI embedding models
MODEL_DIMENSIONS: Dict[str, int] = {
    "text-embedding-3-large": 3072,
    "text-embedding-3-small": 1536,
    "text-embedding-ada-002": 1536,
}


def model_dimensions(model: str) -> Optional[int]:
    """
    Look up the vector size of a model.

    :param model: embedding model identifier
    :returns: dimensionality, or None for unknown models
    """
    return MODEL_DIMENSIONS.get(model)


@dataclass(frozen=True)
class EmbeddingResult:
    """Outcome of a best-effort embedding: either a vector or a reason."""

    vector: Optional[List[float]] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, vector: List[float]) -> "EmbeddingResult":
        return cls(vector=vector)

    @classmethod
    def err(cls, reason: str) -> "EmbeddingResult":
        return cls(error=reason)

    @property
    def is_ok(self) -> bool:
        return self.vector is not None
