"""
=============================================================================
GEMINI STATUS CODES
=============================================================================

This module defines the two-digit status codes a Gemini server may send,
together with the category each code belongs to.

=============================================================================
STATUS CODE CATEGORIES
=============================================================================

Gemini status codes are 2-digit numbers grouped by the first digit. A
client that does not recognise the second digit MUST fall back to the
category, so the first digit carries most of the meaning:

    ┌────────────────────────────────────────────────────────────────────┐
    │                      STATUS CODE CATEGORIES                        │
    ├────────┬───────────────────────────────────────────────────────────┤
    │  1x    │ INPUT: ask the user for a line of text                    │
    │        │                                                           │
    │        │ 10 Input            - Meta is the prompt                  │
    │        │ 11 Sensitive input  - Same, but client hides the typing   │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  2x    │ SUCCESS: a body follows the header                        │
    │        │                                                           │
    │        │ 20 Success          - Meta is the MIME type of the body   │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  3x    │ REDIRECT: meta is the new URL                             │
    │        │                                                           │
    │        │ 30 Temporary        - Keep using the old URL              │
    │        │ 31 Permanent        - Update bookmarks                    │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4x    │ TEMPORARY FAILURE: retrying later may work                │
    │        │                                                           │
    │        │ 40 Temporary failure                                      │
    │        │ 41 Server unavailable - Overloaded or in maintenance      │
    │        │ 44 Slow down          - Rate limited                      │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5x    │ PERMANENT FAILURE: do not retry this request              │
    │        │                                                           │
    │        │ 51 Not found                                              │
    │        │ 59 Bad request        - Malformed URL, wrong scheme ...   │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  6x    │ CLIENT CERTIFICATE REQUIRED                               │
    └────────┴───────────────────────────────────────────────────────────┘

Unlike HTTP there are no headers: the status and meta are the whole
header, and only the 2x class is followed by a body.

=============================================================================
"""

from enum import Enum, IntEnum


class StatusCategory(Enum):
    """The first digit of a status code."""
    INPUT = 1
    SUCCESS = 2
    REDIRECT = 3
    TEMPORARY_FAILURE = 4
    PERMANENT_FAILURE = 5
    CERTIFICATE_REQUIRED = 6


class Status(IntEnum):
    """
    Gemini status codes.

    This enum extends IntEnum, so codes can be used as integers:

        >>> Status.NOT_FOUND
        <Status.NOT_FOUND: 51>
        >>> Status.NOT_FOUND == 51
        True
        >>> Status.NOT_FOUND.category
        <StatusCategory.PERMANENT_FAILURE: 5>
    """

    # =========================================================================
    # 1x INPUT
    # =========================================================================
    INPUT = 10
    SENSITIVE_INPUT = 11

    # =========================================================================
    # 2x SUCCESS
    # =========================================================================
    SUCCESS = 20

    # =========================================================================
    # 3x REDIRECT
    # =========================================================================
    REDIRECT_TEMPORARY = 30
    REDIRECT_PERMANENT = 31

    # =========================================================================
    # 4x TEMPORARY FAILURE
    # =========================================================================
    TEMPORARY_FAILURE = 40
    SERVER_UNAVAILABLE = 41
    CGI_ERROR = 42
    PROXY_ERROR = 43
    SLOW_DOWN = 44

    # =========================================================================
    # 5x PERMANENT FAILURE
    # =========================================================================
    PERMANENT_FAILURE = 50
    NOT_FOUND = 51
    GONE = 52
    PROXY_REQUEST_REFUSED = 53
    BAD_REQUEST = 59

    # =========================================================================
    # 6x CLIENT CERTIFICATE REQUIRED
    # =========================================================================
    CLIENT_CERTIFICATE_REQUIRED = 60
    CERTIFICATE_NOT_AUTHORISED = 61
    CERTIFICATE_NOT_VALID = 62

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def category(self) -> StatusCategory:
        """The class of this status, taken from its first digit."""
        return StatusCategory(self // 10)

    @property
    def phrase(self) -> str:
        """
        Get the default meta text for this status code.

        Used when a failure response is built without a custom message.
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def is_input(self) -> bool:
        return self.category is StatusCategory.INPUT

    @property
    def is_success(self) -> bool:
        return self.category is StatusCategory.SUCCESS

    @property
    def is_redirect(self) -> bool:
        return self.category is StatusCategory.REDIRECT

    @property
    def is_failure(self) -> bool:
        """True for both temporary (4x) and permanent (5x) failures."""
        return self.category in (
            StatusCategory.TEMPORARY_FAILURE,
            StatusCategory.PERMANENT_FAILURE,
        )


# =============================================================================
# DEFAULT META TEXT
# =============================================================================
#
# For failure codes the meta field is a free-form message shown to the
# user. These are the generic messages the server falls back on; they
# never include details about the server's filesystem.
#
# =============================================================================

_STATUS_PHRASES = {
    Status.INPUT: "Input",
    Status.SENSITIVE_INPUT: "Sensitive input",
    Status.SUCCESS: "Success",
    Status.REDIRECT_TEMPORARY: "Redirect",
    Status.REDIRECT_PERMANENT: "Permanent redirect",
    Status.TEMPORARY_FAILURE: "Temporary failure",
    Status.SERVER_UNAVAILABLE: "Server unavailable",
    Status.CGI_ERROR: "CGI error",
    Status.PROXY_ERROR: "Proxy error",
    Status.SLOW_DOWN: "Slow down",
    Status.PERMANENT_FAILURE: "Permanent failure",
    Status.NOT_FOUND: "Not found",
    Status.GONE: "Gone",
    Status.PROXY_REQUEST_REFUSED: "Proxy request refused",
    Status.BAD_REQUEST: "Bad request",
    Status.CLIENT_CERTIFICATE_REQUIRED: "Client certificate required",
    Status.CERTIFICATE_NOT_AUTHORISED: "Certificate not authorised",
    Status.CERTIFICATE_NOT_VALID: "Certificate not valid",
}
