"""Gemini protocol primitives: requests, responses, status codes."""

from .errors import (
    FramingError,
    GeminiError,
    InternalReadFailure,
    MissingPrompt,
    NotFound,
    PathTraversal,
    SchemeError,
    UnexpectedClose,
    UrlParseError,
)
from .mime_types import get_mime_type
from .request import GeminiRequest, RequestParser, parse_request
from .response import (
    CertificateRequired,
    Input,
    PermanentFailure,
    Redirect,
    Response,
    Success,
    TemporaryFailure,
    bad_request,
    not_found,
    ok,
    prompt,
    redirect,
    server_unavailable,
    temporary_failure,
)
from .status_codes import Status, StatusCategory

__all__ = [
    # Request
    "GeminiRequest",
    "RequestParser",
    "parse_request",
    # Response
    "Response",
    "Input",
    "Success",
    "Redirect",
    "TemporaryFailure",
    "PermanentFailure",
    "CertificateRequired",
    "ok",
    "prompt",
    "redirect",
    "not_found",
    "bad_request",
    "temporary_failure",
    "server_unavailable",
    # Status
    "Status",
    "StatusCategory",
    # Errors
    "GeminiError",
    "FramingError",
    "UnexpectedClose",
    "UrlParseError",
    "SchemeError",
    "NotFound",
    "PathTraversal",
    "MissingPrompt",
    "InternalReadFailure",
    # MIME
    "get_mime_type",
]
