"""Schema for embedding API."""

from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field


class EmbedRequest(BaseModel):
    """
    Request body for ad-hoc embeddings.

    Exactly one of ``text``, ``texts`` or ``record`` (also accepted as
    ``service``) must be given. Inputs are loosely typed so that bad
    values are reported as 400 by the view.
    """

    text: Optional[Any] = None
    texts: Optional[Any] = None
    record: Optional[Any] = Field(
        default=None,
        validation_alias=AliasChoices("record", "service"),
    )
    # Accepted for compatibility; the configured model is always used
    model: Optional[str] = None

    def provided(self) -> List[str]:
        """Names of the input shapes present in the request."""
        return [
            name
            for name in ("text", "texts", "record")
            if getattr(self, name) is not None
        ]


class EmbedResponse(BaseModel):
    """Response model for embedding requests."""

    success: bool = True
    embedding: Optional[List[float]] = None
    embeddings: Optional[List[List[float]]] = None
    dimensions: int
    count: int
    model: str
