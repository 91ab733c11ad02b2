"""
=============================================================================
GEMINI REQUEST PARSING
=============================================================================

This module turns the raw request line into a validated GeminiRequest.

=============================================================================
GEMINI REQUEST STRUCTURE
=============================================================================

A Gemini request is a single line: an absolute URL followed by CRLF.
No method, no version, no headers, no body.

    gemini://example.org:1965/docs/page.gmi?hello%20world\r\n
    └────┘   └─────────┘ └──┘└────────────┘ └────────────┘
    scheme       host    port     path          query

The connection layer has already stripped the CRLF and enforced the
1024 byte limit, so the parser only sees the URL bytes.

=============================================================================
WHAT WE REJECT
=============================================================================

    Not UTF-8, empty, or containing spaces/control chars  → UrlParseError
    Relative reference ("/docs", "//host/x")              → UrlParseError
    userinfo ("gemini://me@host/")                         → UrlParseError
    Non-numeric or out-of-range port                       → UrlParseError
    Any scheme other than gemini                           → SchemeError

Both end up as "59" responses; they only differ in the meta text.

The path is deliberately kept percent-encoded. Decoding it here would
turn "%2F" into "/" and hide segment boundaries from the path resolver,
which decodes one segment at a time.

=============================================================================
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlsplit

from .errors import SchemeError, UrlParseError


GEMINI_SCHEME = "gemini"
DEFAULT_PORT = 1965
MAX_REQUEST_LENGTH = 1024   # bytes, not counting CRLF


@dataclass(frozen=True)
class GeminiRequest:
    """
    A validated Gemini request.

    Attributes:
        raw: The request line bytes, without CRLF.
        url: The request line decoded as text.
        scheme: Always "gemini" (lowercased).
        host: Hostname from the URL, lowercased.
        port: Explicit port, or None when the URL has none.
        path: URL path, still percent-encoded. May be empty.
        query: Percent-decoded query, or None when the URL has no "?".
        client_address: Peer (ip, port) tuple, for logging.
    """

    raw: bytes
    url: str
    scheme: str
    host: str
    port: Optional[int]
    path: str
    query: Optional[str]
    client_address: tuple[str, int] = ("", 0)

    @property
    def has_query(self) -> bool:
        """
        True when the URL carries a query component.

        An empty query ("page.form?") still counts: it is how a client
        submits an empty answer to an input prompt.
        """
        return self.query is not None

    @property
    def client_ip(self) -> str:
        return self.client_address[0]


class RequestParser:
    """
    Parses raw request lines into GeminiRequest objects.

    The parser is stateless; one instance is shared by all workers.
    """

    # Spaces and ASCII control characters never appear in a valid URL
    FORBIDDEN_CHARS = re.compile(r"[\x00-\x20\x7f]")

    def __init__(self, max_request_size: int = MAX_REQUEST_LENGTH):
        self.max_request_size = max_request_size

    def parse(
        self,
        line: bytes,
        client_address: tuple[str, int] = ("", 0)
    ) -> GeminiRequest:
        """
        Validate a request line.

        Args:
            line: Request bytes without the CRLF terminator.
            client_address: Client's (ip, port) tuple.

        Returns:
            Parsed GeminiRequest.

        Raises:
            UrlParseError: Malformed or relative URL.
            SchemeError: Well-formed URL with a non-gemini scheme.
        """
        if len(line) > self.max_request_size:
            raise UrlParseError(f"Request line exceeds {self.max_request_size} bytes")

        try:
            url = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise UrlParseError(f"Request line is not valid UTF-8: {e}") from e

        if not url:
            raise UrlParseError("Empty request line")
        if self.FORBIDDEN_CHARS.search(url):
            raise UrlParseError("Request line contains whitespace or control characters")

        try:
            parts = urlsplit(url)
            port = parts.port
        except ValueError as e:
            raise UrlParseError(f"Malformed URL: {e}") from e

        if not parts.scheme:
            raise UrlParseError("URL is not absolute")

        scheme = parts.scheme.lower()
        if scheme != GEMINI_SCHEME:
            raise SchemeError(f"Unsupported scheme: {scheme}")

        if not parts.hostname:
            raise UrlParseError("URL has no host")
        if parts.username is not None or parts.password is not None:
            raise UrlParseError("URL must not contain userinfo")

        # urlsplit reports "" both for "x?" and "x", so look for the "?" itself
        has_query = "?" in url.split("#", 1)[0]
        query = unquote(parts.query) if has_query else None

        return GeminiRequest(
            raw=line,
            url=url,
            scheme=scheme,
            host=parts.hostname,
            port=port,
            path=parts.path,
            query=query,
            client_address=client_address,
        )


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

def parse_request(
    line: bytes,
    client_address: tuple[str, int] = ("", 0),
) -> GeminiRequest:
    """
    Parse a request line with default settings.

    Use RequestParser directly to change the maximum request length.
    """
    return RequestParser().parse(line, client_address)
