"""
=============================================================================
STATIC FILE SERVING
=============================================================================

This module maps a request URL onto the content root and builds the
response for whatever it finds there.

=============================================================================
HOW A PATH IS RESOLVED
=============================================================================

    gemini://host/docs/greet.form?Ada
                  └─────────────┘
                        │
                        ▼
    1. Split on "/", percent-decode each segment on its own
       ("", ".")  → skipped
       ".."       → PathTraversal (never normalized away)
       "a%2Fb"    → decodes to "a/b" → PathTraversal
    2. Join onto the content root, resolve() symlinks,
       check the result is still inside the root
    3. Classify:

    ┌───────────────────────────────────┬─────────────────────────────┐
    │ name ends with the form suffix    │ FormPhase1 / FormPhase2     │
    │                                   │ (by presence of a query)    │
    │ regular file                      │ RegularFile                 │
    │ directory with a readable index   │ DirectoryWithIndex          │
    │ other directory                   │ DirectoryListing            │
    │ anything else / missing           │ NotFound                    │
    └───────────────────────────────────┴─────────────────────────────┘

A form document whose file does not exist still classifies as a form;
the failure surfaces when the engine reads it, as NotFound.

=============================================================================
SECURITY
=============================================================================

Two independent checks guard the root:

1. The segment check rejects ".." before touching the filesystem, so
   "/a/../../etc/passwd" fails even though it would normalize to a
   path that does not exist.
2. The resolve()+relative_to() check catches symlinks that point out
   of the root.

Both produce the same "51 Not found" a missing file does, so a client
cannot probe for the existence of files outside the root.

=============================================================================
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union
from urllib.parse import unquote

from ..gemini.errors import GeminiError, InternalReadFailure, NotFound, PathTraversal
from ..gemini.mime_types import get_mime_type
from ..gemini.request import GeminiRequest
from ..gemini.response import Response, Success
from .forms import FormEngine
from .listing import DirectoryLister


logger = logging.getLogger(__name__)


# =============================================================================
# RESOLVED TARGETS
# =============================================================================

@dataclass(frozen=True)
class RegularFile:
    path: Path


@dataclass(frozen=True)
class DirectoryWithIndex:
    """A directory; ``path`` is its index document."""
    path: Path


@dataclass(frozen=True)
class DirectoryListing:
    """A directory without an index; ``url_path`` is its site path."""
    path: Path
    url_path: str


@dataclass(frozen=True)
class FormPhase1:
    path: Path


@dataclass(frozen=True)
class FormPhase2:
    path: Path
    answer: str


ResolvedTarget = Union[RegularFile, DirectoryWithIndex, DirectoryListing, FormPhase1, FormPhase2]


class PathResolver:
    """
    Maps request paths to ResolvedTarget values under a content root.

    The resolver only inspects the filesystem; it never reads file
    contents (apart from the readability probe of an index document).
    """

    def __init__(
        self,
        root_dir: str | Path,
        index_file: str = "index.gmi",
        form_suffix: str = ".form",
    ):
        """
        Args:
            root_dir: Directory to serve. Must exist.
            index_file: Document served for a directory request.
            form_suffix: Final-segment suffix marking form documents.

        Raises:
            ValueError: root_dir is not a directory.
        """
        self.root_dir = Path(root_dir).resolve()
        self.index_file = index_file
        self.form_suffix = form_suffix

        if not self.root_dir.is_dir():
            raise ValueError(f"Content root directory does not exist: {root_dir}")

    def segments(self, path: str) -> list[str]:
        """
        Split a percent-encoded URL path into safe, decoded segments.

        Raises:
            PathTraversal: A ".." segment, or a segment that decodes to
                           something containing a separator or NUL.
        """
        result = []
        for raw in path.split("/"):
            # Bytes that are not UTF-8 map back to the same on-disk name
            segment = unquote(raw, errors="surrogateescape")
            if segment in ("", "."):
                continue
            if segment == "..":
                raise PathTraversal(f"Parent segment in path: {path}")
            if "/" in segment or "\\" in segment or "\x00" in segment:
                raise PathTraversal(f"Encoded separator in path: {path}")
            result.append(segment)
        return result

    def resolve(self, request: GeminiRequest) -> ResolvedTarget:
        """
        Classify the request's target.

        Raises:
            PathTraversal: Path escapes the content root.
            NotFound: Nothing servable exists at the path.
        """
        segments = self.segments(request.path)
        url_path = "/" + "/".join(segments)

        try:
            full_path = self.root_dir.joinpath(*segments).resolve()
        except (OSError, RuntimeError) as e:
            # Symlink loops end up here
            raise NotFound(f"Cannot resolve {url_path}: {e}") from e

        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt from {request.client_ip}: {request.path}")
            raise PathTraversal(f"Resolved outside content root: {url_path}") from None

        if segments and segments[-1].endswith(self.form_suffix):
            if request.has_query:
                return FormPhase2(full_path, request.query)
            return FormPhase1(full_path)

        try:
            if full_path.is_file():
                return RegularFile(full_path)

            if full_path.is_dir():
                index_path = full_path / self.index_file
                if index_path.is_file() and os.access(index_path, os.R_OK):
                    return DirectoryWithIndex(index_path)
                return DirectoryListing(full_path, url_path)
        except OSError as e:
            # ENAMETOOLONG, EACCES on a parent ...
            raise NotFound(f"Cannot stat {url_path}: {e}") from e

        raise NotFound(f"No such file: {url_path}")


class StaticFileHandler:
    """
    Handler that serves the content root.

    =========================================================================
    FLOW
    =========================================================================

        request
           │
           ▼
        PathResolver.resolve() ──► ResolvedTarget
           │
           ▼
        RegularFile / DirectoryWithIndex → 20 + exact file bytes
        DirectoryListing                 → 20 + generated gemtext
        FormPhase1                       → 10 / 11 + prompt
        FormPhase2                       → 20 + rendered form

        GeminiError anywhere → its own response (51, 40, ...)

    =========================================================================
    USAGE
    =========================================================================

        static = StaticFileHandler("/srv/gemini")
        response = static.handle(request)

    =========================================================================
    """

    def __init__(
        self,
        root_dir: str | Path,
        index_file: str = "index.gmi",
        form_suffix: str = ".form",
        show_hidden: bool = False,
    ):
        self.resolver = PathResolver(root_dir, index_file=index_file, form_suffix=form_suffix)
        self.forms = FormEngine()
        self.lister = DirectoryLister(show_hidden=show_hidden)

    @property
    def root_dir(self) -> Path:
        return self.resolver.root_dir

    def handle(self, request: GeminiRequest) -> Response:
        try:
            target = self.resolver.resolve(request)
            return self.respond(target)
        except GeminiError as e:
            logger.debug(f"{request.url}: {type(e).__name__}: {e}")
            return e.to_response()

    def respond(self, target: ResolvedTarget) -> Response:
        """
        Build the response for a resolved target.

        Raises:
            NotFound: File vanished or unreadable.
            InternalReadFailure: Directory listing failed.
        """
        if isinstance(target, (RegularFile, DirectoryWithIndex)):
            return self._serve_file(target.path)

        if isinstance(target, DirectoryListing):
            try:
                body = self.lister.render(target.path, target.url_path)
            except OSError as e:
                raise InternalReadFailure(f"Cannot list {target.path}: {e}") from e
            return Success(body=body.encode("utf-8"), mime_type="text/gemini")

        if isinstance(target, FormPhase1):
            return self.forms.prompt(target.path)

        if isinstance(target, FormPhase2):
            return self.forms.submit(target.path, target.answer)

        raise TypeError(f"Unknown target: {target!r}")

    def _serve_file(self, path: Path) -> Success:
        try:
            body = path.read_bytes()
        except OSError as e:
            raise NotFound(f"Cannot read {path}: {e}") from e
        return Success(body=body, mime_type=get_mime_type(path))


def serve_static(root_dir: str, **kwargs) -> StaticFileHandler:
    """
    Create a static file handler.

    Example:
        server = GeminiServer(config, handler=serve_static("/srv/gemini").handle)
    """
    return StaticFileHandler(root_dir, **kwargs)


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Security: per-segment ".." rejection plus resolved-path containment
# 2. Correctness: files are served byte for byte, never re-encoded
# 3. Features: index documents, generated listings, two-phase forms
# =============================================================================
