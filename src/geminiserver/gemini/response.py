"""
=============================================================================
GEMINI RESPONSE
=============================================================================

This module builds Gemini responses and serializes them to bytes.

=============================================================================
GEMINI RESPONSE STRUCTURE
=============================================================================

A Gemini response is much smaller than an HTTP one. There are no headers,
no Content-Length and no keep-alive: the server writes one response and
closes the connection, and the client reads until EOF.

    ┌─────────────────────────────────────────────────────────────────┐
    │  HEADER LINE                                                     │
    │  ─────────────────────────────────────────────────────────────  │
    │  20 text/gemini\r\n                                             │
    │  └┘ └─────────┘                                                  │
    │  Status  Meta                                                    │
    ├─────────────────────────────────────────────────────────────────┤
    │  BODY (2x responses only)                                        │
    │  ─────────────────────────────────────────────────────────────  │
    │  # Hello\n                                                       │
    │  Welcome to my capsule.\n                                        │
    │  \r\n                         ← trailing terminator              │
    └─────────────────────────────────────────────────────────────────┘

What "meta" means depends on the status class:

    1x  → the prompt shown to the user
    2x  → the MIME type of the body
    3x  → the URL to redirect to
    4x/5x/6x → a human readable error message

=============================================================================
ONE CLASS PER STATUS CATEGORY
=============================================================================

Each category gets its own immutable dataclass. Only Success has a body
field, so a failure carrying a body cannot be constructed:

    Input(prompt, sensitive)            → 10 / 11
    Success(body, mime_type)            → 20
    Redirect(url, permanent)            → 30 / 31
    TemporaryFailure(message, status)   → 4x
    PermanentFailure(message, status)   → 5x
    CertificateRequired(message, status)→ 6x

=============================================================================
"""

from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from .status_codes import Status, StatusCategory


CRLF = b"\r\n"
MAX_META_LENGTH = 1024   # bytes, UTF-8 encoded


def _check_meta(meta: str) -> None:
    """Reject meta text that would corrupt the header line."""
    if "\r" in meta or "\n" in meta:
        raise ValueError("Response meta must not contain CR or LF")
    if len(meta.encode("utf-8")) > MAX_META_LENGTH:
        raise ValueError(f"Response meta exceeds {MAX_META_LENGTH} bytes")


class Response:
    """
    Base class for all Gemini responses.

    Subclasses provide ``status`` and ``meta``; only Success overrides
    ``body``.
    """

    category: ClassVar[StatusCategory]
    body: Optional[bytes] = None

    @property
    def header(self) -> str:
        """The status line without its terminator, e.g. ``51 Not found``."""
        return f"{int(self.status)} {self.meta}"

    def to_bytes(self) -> bytes:
        """
        Serialize the complete response for the wire.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    Serialization                                 │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   "<status> <meta>\\r\\n"          ← always                      │
        │   "<body>\\r\\n"                   ← success with a body only    │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        The body is written byte for byte as provided; nothing is
        re-encoded.
        """
        data = self.header.encode("utf-8") + CRLF
        if self.body is not None:
            data += self.body + CRLF
        return data

    def _validate_status(self) -> None:
        status = Status(self.status)
        if status.category is not self.category:
            raise ValueError(
                f"Status {int(status)} does not belong to {self.category.name}"
            )
        object.__setattr__(self, "status", status)


@dataclass(frozen=True)
class Input(Response):
    """Ask the client for a line of input (10, or 11 when sensitive)."""

    prompt: str
    sensitive: bool = False

    category: ClassVar[StatusCategory] = StatusCategory.INPUT

    def __post_init__(self):
        _check_meta(self.prompt)

    @property
    def status(self) -> Status:
        return Status.SENSITIVE_INPUT if self.sensitive else Status.INPUT

    @property
    def meta(self) -> str:
        return self.prompt


@dataclass(frozen=True)
class Success(Response):
    """A 20 response carrying a document."""

    body: Optional[bytes] = None
    mime_type: str = "text/gemini"

    category: ClassVar[StatusCategory] = StatusCategory.SUCCESS

    def __post_init__(self):
        _check_meta(self.mime_type)

    @property
    def status(self) -> Status:
        return Status.SUCCESS

    @property
    def meta(self) -> str:
        return self.mime_type


@dataclass(frozen=True)
class Redirect(Response):
    """Send the client to another URL (30, or 31 when permanent)."""

    url: str
    permanent: bool = False

    category: ClassVar[StatusCategory] = StatusCategory.REDIRECT

    def __post_init__(self):
        _check_meta(self.url)

    @property
    def status(self) -> Status:
        return Status.REDIRECT_PERMANENT if self.permanent else Status.REDIRECT_TEMPORARY

    @property
    def meta(self) -> str:
        return self.url


@dataclass(frozen=True)
class _Failure(Response):
    message: Optional[str] = None
    status: Status = Status.PERMANENT_FAILURE

    def __post_init__(self):
        self._validate_status()
        _check_meta(self.meta)

    @property
    def meta(self) -> str:
        # An empty message falls back to the status' default text
        return self.message or self.status.phrase


@dataclass(frozen=True)
class TemporaryFailure(_Failure):
    """A 4x response: the request may succeed if retried later."""

    status: Status = Status.TEMPORARY_FAILURE
    category: ClassVar[StatusCategory] = StatusCategory.TEMPORARY_FAILURE


@dataclass(frozen=True)
class PermanentFailure(_Failure):
    """A 5x response: the request will never succeed as sent."""

    status: Status = Status.PERMANENT_FAILURE
    category: ClassVar[StatusCategory] = StatusCategory.PERMANENT_FAILURE


@dataclass(frozen=True)
class CertificateRequired(_Failure):
    """A 6x response: the client must present (another) certificate."""

    status: Status = Status.CLIENT_CERTIFICATE_REQUIRED
    category: ClassVar[StatusCategory] = StatusCategory.CERTIFICATE_REQUIRED


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================
#
# Shortcuts for the responses the server sends most often. Failure
# messages default to generic text so no filesystem detail leaks out.
#
# =============================================================================

def ok(body: Union[str, bytes], mime_type: str = "text/gemini") -> Success:
    """Create a 20 response; text bodies are encoded as UTF-8."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    return Success(body=body, mime_type=mime_type)


def prompt(text: str, sensitive: bool = False) -> Input:
    return Input(prompt=text, sensitive=sensitive)


def redirect(url: str, permanent: bool = False) -> Redirect:
    return Redirect(url=url, permanent=permanent)


def not_found(message: str = "Not found") -> PermanentFailure:
    return PermanentFailure(message=message, status=Status.NOT_FOUND)


def bad_request(message: str = "Bad request") -> PermanentFailure:
    return PermanentFailure(message=message, status=Status.BAD_REQUEST)


def temporary_failure(message: str = "Temporary failure") -> TemporaryFailure:
    """
    Create a 40 response.

    Used when the server hit an unexpected error. Keep the message
    generic: it is shown to the remote user.
    """
    return TemporaryFailure(message=message, status=Status.TEMPORARY_FAILURE)


def server_unavailable(message: str = "Server unavailable") -> TemporaryFailure:
    return TemporaryFailure(message=message, status=Status.SERVER_UNAVAILABLE)
