"""Custom exception hierarchy for docchat.

All application exceptions inherit from :class:`DocChatError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "openai", "anthropic", "ollama") caused the failure.
Every class also declares the HTTP ``status_code`` and machine-readable
``code`` the API layer reports for it.

The hierarchy is organized by domain:

    DocChatError  (base -- catch-all for any docchat error)
    +-- IngestionError               (upload / extraction, 4xx)
    |   +-- UnsupportedFormatError
    |   +-- FileTooLargeError
    |   +-- DocumentLimitReachedError
    |   +-- ExtractionError          (corrupt PDF / DOCX, 422)
    +-- DocumentNotFoundError
    +-- ChatHistoryNotFoundError
    +-- NoDocumentsError             (chat precondition)
    +-- InvalidRequestError          (e.g. missing question, 400)
    +-- GenerationError              (any generation backend failure, tagged
    |   |                             with an ErrorKind)
    |   +-- AuthenticationFailedError
    |   +-- QuotaExceededError
    |   +-- ServiceUnavailableError  (circuit breaker open)
    |   |   +-- ServiceOverloadedError
    |   +-- GenerationFailedError    (retries exhausted)
    +-- StorageError                 (document store failure)
    +-- ConfigurationError           (startup / missing credentials)
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Structured classification attached to every :class:`GenerationError`.

    Provider adapters translate SDK exception types and HTTP status codes
    into one of these tags; the generation client decides retry and
    circuit-breaker behaviour by tag alone.
    """

    INVALID_CREDENTIALS = "invalid_credentials"
    QUOTA_EXHAUSTED = "quota_exhausted"
    BAD_REQUEST = "bad_request"
    EMPTY_RESPONSE = "empty_response"
    OVERLOADED = "overloaded"
    UNAVAILABLE = "unavailable"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in _RETRYABLE_KINDS

    @property
    def overload(self) -> bool:
        """Overload-class failures are the only ones the circuit breaker counts."""
        return self in _OVERLOAD_KINDS


_RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.OVERLOADED,
        ErrorKind.UNAVAILABLE,
        ErrorKind.RATE_LIMITED,
        ErrorKind.INTERNAL,
        ErrorKind.DEADLINE_EXCEEDED,
    }
)
_OVERLOAD_KINDS = frozenset({ErrorKind.OVERLOADED, ErrorKind.UNAVAILABLE})


class DocChatError(Exception):
    """Base exception for all docchat errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def details(self) -> dict[str, object]:
        """Extra machine-readable fields merged into the API error body."""
        return {}

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------


class IngestionError(DocChatError):
    """Raised when an uploaded file cannot be turned into a document."""

    status_code = 400
    code = "INGESTION_FAILED"

    def __init__(
        self,
        message: str = "Failed to process uploaded file",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class UnsupportedFormatError(IngestionError):
    """Raised when the declared MIME type is not in the upload allow-list."""

    status_code = 415
    code = "UNSUPPORTED_FORMAT"

    def __init__(self, mime_type: str, allowed: frozenset[str] | None = None) -> None:
        self._mime_type = mime_type
        message = f"Unsupported file type: {mime_type or 'unknown'}"
        if allowed:
            message += f". Allowed: {', '.join(sorted(allowed))}"
        super().__init__(message=message)

    @property
    def mime_type(self) -> str:
        return self._mime_type


class FileTooLargeError(IngestionError):
    """Raised when an upload exceeds the configured size ceiling."""

    status_code = 413
    code = "FILE_TOO_LARGE"

    def __init__(self, size: int, limit: int) -> None:
        self._size = size
        self._limit = limit
        super().__init__(
            message=(
                f"File too large: {size} bytes. "
                f"Maximum: {limit} bytes ({limit // (1024 * 1024)} MB)."
            )
        )

    @property
    def size(self) -> int:
        return self._size

    @property
    def limit(self) -> int:
        return self._limit

    def details(self) -> dict[str, object]:
        return {"limit": self._limit}


class DocumentLimitReachedError(IngestionError):
    """Raised when an owner already has the maximum number of active documents."""

    status_code = 403
    code = "DOCUMENT_LIMIT_REACHED"

    def __init__(self, current: int, limit: int) -> None:
        self._current = current
        self._limit = limit
        super().__init__(
            message=(
                f"Document limit reached ({current}/{limit}). "
                "Delete a document before uploading another."
            )
        )

    @property
    def current(self) -> int:
        return self._current

    @property
    def limit(self) -> int:
        return self._limit

    def details(self) -> dict[str, object]:
        return {"current": self._current, "limit": self._limit}


class ExtractionError(IngestionError):
    """Raised when a PDF or DOCX file cannot be parsed."""

    status_code = 422
    code = "EXTRACTION_FAILED"

    def __init__(
        self,
        message: str = "Could not extract text from file",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Lookup / precondition errors
# ---------------------------------------------------------------------------


class DocumentNotFoundError(DocChatError):
    """Raised when a document does not exist, is deleted, or belongs to someone else."""

    status_code = 404
    code = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_id: str) -> None:
        self._document_id = document_id
        super().__init__(message=f"Document not found: {document_id}")

    @property
    def document_id(self) -> str:
        return self._document_id


class ChatHistoryNotFoundError(DocChatError):
    """Raised when a history entry does not exist, is deleted, or belongs to someone else."""

    status_code = 404
    code = "CHAT_HISTORY_NOT_FOUND"

    def __init__(self, history_id: str) -> None:
        self._history_id = history_id
        super().__init__(message=f"Chat history not found: {history_id}")

    @property
    def history_id(self) -> str:
        return self._history_id


class NoDocumentsError(DocChatError):
    """Raised when a chat request resolves to an empty document set."""

    status_code = 404
    code = "NO_DOCUMENTS"

    def __init__(
        self,
        message: str = "No documents found. Please upload documents first.",
    ) -> None:
        super().__init__(message=message)


class InvalidRequestError(DocChatError):
    """Raised when a request is well-formed JSON but semantically unusable."""

    status_code = 400
    code = "INVALID_REQUEST"

    def __init__(self, message: str = "Invalid request") -> None:
        super().__init__(message=message)


# ---------------------------------------------------------------------------
# Generation errors
# ---------------------------------------------------------------------------


class GenerationError(DocChatError):
    """Raised when a text-generation call fails.

    Provider adapters raise this with a structured ``kind``; the generation
    client uses ``kind.retryable`` / ``kind.overload`` to drive retries and
    the circuit breaker.
    """

    status_code = 502
    code = "GENERATION_ERROR"

    def __init__(
        self,
        message: str = "Text generation failed",
        provider_name: str | None = None,
        kind: ErrorKind = ErrorKind.UNKNOWN,
    ) -> None:
        self._kind = kind
        super().__init__(message=message, provider_name=provider_name)

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    @property
    def retryable(self) -> bool:
        return self._kind.retryable


class AuthenticationFailedError(GenerationError):
    """The generation backend rejected our credentials.  Never retried."""

    status_code = 503
    code = "AI_AUTH_FAILED"

    def __init__(
        self,
        message: str = "The AI service rejected the configured credentials.",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            provider_name=provider_name,
            kind=ErrorKind.INVALID_CREDENTIALS,
        )


class QuotaExceededError(GenerationError):
    """The generation backend's usage quota is exhausted.  Never retried."""

    status_code = 429
    code = "QUOTA_EXCEEDED"

    def __init__(
        self,
        message: str = "Daily AI usage limit reached. Please try again tomorrow.",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(
            message=message,
            provider_name=provider_name,
            kind=ErrorKind.QUOTA_EXHAUSTED,
        )


class ServiceUnavailableError(GenerationError):
    """Raised without contacting the backend while the circuit breaker is open."""

    status_code = 503
    code = "SERVICE_UNAVAILABLE"

    def __init__(
        self,
        retry_after: float,
        message: str | None = None,
        provider_name: str | None = None,
    ) -> None:
        self._retry_after = max(0.0, retry_after)
        super().__init__(
            message=message
            or (
                "Service temporarily unavailable. Circuit breaker is open. "
                f"Try again in {round(self._retry_after)} seconds."
            ),
            provider_name=provider_name,
            kind=ErrorKind.OVERLOADED,
        )

    @property
    def retry_after(self) -> float:
        return self._retry_after

    def details(self) -> dict[str, object]:
        return {"retryAfter": max(1, round(self._retry_after))}


class ServiceOverloadedError(ServiceUnavailableError):
    """Caller-facing form of an overload: breaker open or overload retries exhausted."""

    code = "SERVICE_OVERLOADED"

    def __init__(self, retry_after: float = 30.0, provider_name: str | None = None) -> None:
        super().__init__(
            retry_after=retry_after,
            message=(
                "The AI service is currently experiencing high demand. "
                "Please try again in a few moments."
            ),
            provider_name=provider_name,
        )


class GenerationFailedError(GenerationError):
    """Raised when every permitted attempt failed with a retryable error."""

    status_code = 502
    code = "GENERATION_FAILED"

    def __init__(self, last_error: GenerationError, attempts: int) -> None:
        self._last_error = last_error
        self._attempts = attempts
        super().__init__(
            message=(
                f"AI generation failed after {attempts} attempt(s): "
                f"{last_error.message}"
            ),
            provider_name=last_error.provider_name,
            kind=last_error.kind,
        )

    @property
    def last_error(self) -> GenerationError:
        return self._last_error

    @property
    def attempts(self) -> int:
        return self._attempts


# ---------------------------------------------------------------------------
# Infrastructure errors
# ---------------------------------------------------------------------------


class StorageError(DocChatError):
    """Raised when the document store cannot complete an operation."""

    status_code = 500
    code = "STORAGE_ERROR"

    def __init__(
        self,
        message: str = "Document store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(DocChatError):
    """Raised when configuration is invalid or missing at startup."""

    status_code = 500
    code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Helpers for provider adapters
# ---------------------------------------------------------------------------


def kind_for_status(status_code: int | None) -> ErrorKind:
    """Classify an HTTP status returned by a generation backend."""
    if status_code is None:
        return ErrorKind.UNKNOWN
    if status_code in (401, 403):
        return ErrorKind.INVALID_CREDENTIALS
    if status_code == 402:
        return ErrorKind.QUOTA_EXHAUSTED
    if status_code in (400, 404, 413, 422):
        return ErrorKind.BAD_REQUEST
    if status_code == 408:
        return ErrorKind.DEADLINE_EXCEEDED
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code == 503:
        return ErrorKind.UNAVAILABLE
    if status_code == 529:
        return ErrorKind.OVERLOADED
    if status_code >= 500:
        return ErrorKind.INTERNAL
    return ErrorKind.UNKNOWN


def generation_error_for(
    kind: ErrorKind,
    message: str,
    provider_name: str | None = None,
) -> GenerationError:
    """Build the most specific :class:`GenerationError` subclass for *kind*."""
    if kind is ErrorKind.INVALID_CREDENTIALS:
        return AuthenticationFailedError(provider_name=provider_name)
    if kind is ErrorKind.QUOTA_EXHAUSTED:
        return QuotaExceededError(provider_name=provider_name)
    return GenerationError(message=message, provider_name=provider_name, kind=kind)
