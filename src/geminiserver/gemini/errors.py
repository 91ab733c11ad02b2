"""
Request failure taxonomy.

Every way a request can fail is a subclass of GeminiError. Each class
knows the response it turns into, so the connection handler only needs
one ``except GeminiError`` clause:

    FramingError          → nothing is written, the connection is closed
    UrlParseError         → 59 Bad request
    SchemeError           → 59 Unsupported scheme
    NotFound              → 51 Not found
    InternalReadFailure   → 40 Temporary failure

The message passed to the exception is for the server log only. The
meta sent to the client is always the generic text below.
"""

from typing import Optional

from .response import Response, bad_request, not_found, temporary_failure


class GeminiError(Exception):
    """Base class for classified request failures."""

    def to_response(self) -> Optional[Response]:
        """The response to send, or None to close without answering."""
        raise NotImplementedError


class FramingError(GeminiError):
    """The request line could not be delimited (too long, timed out)."""

    def to_response(self) -> Optional[Response]:
        return None


class UnexpectedClose(FramingError):
    """The client closed the stream before sending a full request line."""


class UrlParseError(GeminiError):
    """The request line is not a valid absolute URI."""

    def to_response(self) -> Optional[Response]:
        return bad_request("Bad request")


class SchemeError(GeminiError):
    """The request URI uses a scheme other than gemini."""

    def to_response(self) -> Optional[Response]:
        return bad_request("Unsupported scheme")


class NotFound(GeminiError):
    """No servable resource exists for the request."""

    def to_response(self) -> Optional[Response]:
        return not_found()


class PathTraversal(NotFound):
    """The path tried to leave the content root."""


class MissingPrompt(NotFound):
    """A form document has no prompt line."""


class InternalReadFailure(GeminiError):
    """An unexpected I/O error while building a response."""

    def to_response(self) -> Optional[Response]:
        return temporary_failure()
