"""
=============================================================================
INPUT FORMS
=============================================================================

Gemini has no POST. The only way to send data is the 1x/query round
trip:

    ┌─────────────────────────────────────────────────────────────────┐
    │                                                                  │
    │   C: gemini://host/greet.form                                    │
    │   S: 10 What is your name?              ← phase 1: prompt        │
    │                                                                  │
    │   (client asks the user, then re-requests with the answer)       │
    │                                                                  │
    │   C: gemini://host/greet.form?Ada                                │
    │   S: 20 text/gemini                      ← phase 2: rendered doc │
    │      Hello Ada!                                                  │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

=============================================================================
FORM DOCUMENT FORMAT
=============================================================================

A form document is a gemtext file with two extra conventions:

    ?What is your name?          ← prompt line (first line starting "?")
    # Greeting
    Hello {INPUT}!               ← every {INPUT} is replaced by the answer

A prompt line starting with "??" asks for SENSITIVE input (status 11);
clients mask what the user types. Every line starting with "?" is
removed from the rendered output.

The answer is inserted verbatim. Gemtext has no markup that could run
code, so the worst an answer can do is add lines to the rendered page.

=============================================================================
"""

import logging
from pathlib import Path

from ..gemini.errors import MissingPrompt, NotFound
from ..gemini.response import MAX_META_LENGTH, Input, Success


logger = logging.getLogger(__name__)

PROMPT_MARKER = "?"
SENSITIVE_MARKER = "??"
INPUT_PLACEHOLDER = "{INPUT}"


def extract_prompt(text: str) -> tuple[str, bool]:
    """
    Find the prompt line of a form document.

    Returns:
        (prompt text, sensitive flag). The leading "?" markers and
        surrounding whitespace are stripped from the prompt.

    Raises:
        MissingPrompt: No line starts with "?".

    Example:
        >>> extract_prompt("# Login\\n??Password\\n")
        ('Password', True)
    """
    for line in text.splitlines():
        if line.startswith(PROMPT_MARKER):
            sensitive = line.startswith(SENSITIVE_MARKER)
            return line.lstrip(PROMPT_MARKER).strip(), sensitive
    raise MissingPrompt("Form document has no prompt line")


def render_form(text: str, answer: str) -> str:
    """
    Render a form document with the user's answer.

    Prompt lines are removed first, then placeholders are substituted,
    so an answer that itself starts with "?" is kept.

    Example:
        >>> render_form("?Enter name\\nHello {INPUT}", "Ada")
        'Hello Ada'
    """
    kept = [
        line.replace(INPUT_PLACEHOLDER, answer)
        for line in text.splitlines(keepends=True)
        if not line.startswith(PROMPT_MARKER)
    ]
    return "".join(kept)


def _truncate_meta(prompt: str) -> str:
    encoded = prompt.encode("utf-8")
    if len(encoded) <= MAX_META_LENGTH:
        return prompt
    return encoded[:MAX_META_LENGTH].decode("utf-8", errors="ignore")


class FormEngine:
    """
    Serves form documents in both phases.

    Any failure to read or decode the document is reported as NotFound,
    the same outcome as a missing file.
    """

    def _read(self, path: Path) -> str:
        try:
            # Decoded from bytes so CRLF line endings survive
            return path.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Cannot read form document {path}: {e}")
            raise NotFound(f"Form document unreadable: {path.name}") from e

    def prompt(self, path: Path) -> Input:
        """Phase 1: answer with the document's prompt."""
        prompt, sensitive = extract_prompt(self._read(path))
        return Input(prompt=_truncate_meta(prompt), sensitive=sensitive)

    def submit(self, path: Path, answer: str) -> Success:
        """Phase 2: answer with the rendered document."""
        body = render_form(self._read(path), answer)
        return Success(body=body.encode("utf-8"), mime_type="text/gemini")
