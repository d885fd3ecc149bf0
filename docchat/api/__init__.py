"""docchat API layer: routes, schemas, and middleware."""

from docchat.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from docchat.api.routes import router
from docchat.api.schemas import (
    ChatRequest,
    ChatResponse,
    DocumentUploadResponse,
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "router",
    "ChatRequest",
    "ChatResponse",
    "DocumentUploadResponse",
    "ErrorResponse",
    "HealthResponse",
]
