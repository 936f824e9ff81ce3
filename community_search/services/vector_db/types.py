"""Shared types for vector database module."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes the camelCase document layout."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class RecordDetails(CamelModel):
    """Optional long-form fields scraped from a service detail page."""

    details_html: Optional[str] = Field(default=None, alias="detailsHTML")
    full_description: Optional[str] = None
    eligibility: Optional[str] = None
    application_process: Optional[str] = None
    documents_required: Optional[str] = None
    languages: Optional[str] = None
    fees: Optional[str] = None
    accessibility: Optional[str] = None
    hours_of_operation: Optional[str] = None
    service_areas: Optional[str] = None
    mailing_address: Optional[str] = None


class Record(CamelModel):
    """Community service record as stored in the vector store."""

    id: str
    name: str = ""
    subtitle: str = ""
    description: str = ""
    address: str = ""
    phone: str = ""
    website: str = ""
    locations: List[str] = Field(default_factory=list)
    subtopic_ids: List[str] = Field(default_factory=list)
    details: Optional[RecordDetails] = None
    # Kept out of serialized output; the store persists it as the point vector
    embedding: Optional[List[float]] = Field(default=None, exclude=True)
    embedding_model: Optional[str] = None

    @property
    def has_embedding(self) -> bool:
        """A record needs work when its embedding is absent, null or empty."""
        return bool(self.embedding)

    @property
    def is_complete(self) -> bool:
        return bool(self.locations)

    def to_payload(self) -> dict:
        """Document fields without the vector, as persisted next to it."""
        return self.model_dump(by_alias=True, exclude={"embedding"}, exclude_none=True)


class Embedding(BaseModel):
    """A vector together with the model that produced it."""

    vector: List[float]
    model: str

    @property
    def dimensions(self) -> int:
        return len(self.vector)


class Candidate(BaseModel):
    """ANN query hit with the store-computed cosine similarity."""

    record: Record
    score: float
