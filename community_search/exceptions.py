"""Exception hierarchy for embedding generation and vector search."""

from typing import Any, Dict, Optional


class CommunitySearchError(Exception):
    """Base exception for all community search errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response."""
        return {
            "success": False,
            "error": self.message,
            "detail": self.message,
            "code": self.code,
            "details": self.details,
        }


class ComposeError(CommunitySearchError):
    """A record produced no usable text for embedding."""

    status_code = 422

    def __init__(self, record_id: Optional[str] = None):
        super().__init__(
            "No valid text found in record data",
            code="COMPOSE_ERROR",
            details={"record_id": record_id} if record_id else None,
        )


class InvalidInputError(CommunitySearchError):
    """Caller passed an empty or non-string text."""

    status_code = 400

    def __init__(self, message: str = "Text input is required and must be a non-empty string"):
        super().__init__(message, code="INVALID_INPUT")


class NoValidInputError(CommunitySearchError):
    """A batch request contained no embeddable texts."""

    status_code = 400

    def __init__(self, message: str = "No valid texts provided for embedding"):
        super().__init__(message, code="NO_VALID_INPUT")


class MissingCredentialsError(CommunitySearchError):
    """The embedding provider has no API key configured."""

    status_code = 503

    def __init__(self, message: str = "OPENAI_API_KEY is required for the embedding client"):
        super().__init__(message, code="MISSING_CREDENTIALS")


class ProviderError(CommunitySearchError):
    """Embedding provider transport, auth or quota failure."""

    status_code = 502

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        transient: bool = False,
    ):
        self.transient = transient
        super().__init__(
            message,
            code="PROVIDER_ERROR",
            details={"model": model, "transient": transient},
        )


class QueryError(CommunitySearchError):
    """Vector store query or write failure."""

    status_code = 502

    def __init__(self, message: str, collection: Optional[str] = None):
        super().__init__(
            message,
            code="QUERY_ERROR",
            details={"collection": collection} if collection else None,
        )


class NotFoundError(CommunitySearchError):
    """Unknown record id."""

    status_code = 404

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Service not found: {record_id}", code="NOT_FOUND")


class NoEmbeddingError(CommunitySearchError):
    """Similarity lookup on a record that has no stored embedding."""

    status_code = 409

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(
            f"Service {record_id} does not have an embedding",
            code="NO_EMBEDDING",
        )


class SearchError(CommunitySearchError):
    """A search request failed because of a provider or store error."""

    status_code = 500

    def __init__(self, message: str, search_type: Optional[str] = None):
        super().__init__(
            message,
            code="SEARCH_ERROR",
            details={"search_type": search_type} if search_type else None,
        )


def is_transient(error: BaseException) -> bool:
    """
    Tell whether an error is worth retrying.

    :param error: raised exception
    :returns: True for transient provider failures only
    """
    return isinstance(error, ProviderError) and error.transient
