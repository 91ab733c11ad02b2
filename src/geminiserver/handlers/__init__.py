"""
Request handlers.

A handler is any callable taking a GeminiRequest and returning a
Response. StaticFileHandler.handle is the one the server uses by
default; it serves files, generated listings and input forms from the
content root.
"""

from .forms import FormEngine, extract_prompt, render_form
from .listing import DirectoryLister
from .static import (
    DirectoryListing,
    DirectoryWithIndex,
    FormPhase1,
    FormPhase2,
    PathResolver,
    RegularFile,
    ResolvedTarget,
    StaticFileHandler,
    serve_static,
)

__all__ = [
    "StaticFileHandler",
    "serve_static",
    "PathResolver",
    "ResolvedTarget",
    "RegularFile",
    "DirectoryWithIndex",
    "DirectoryListing",
    "FormPhase1",
    "FormPhase2",
    "FormEngine",
    "extract_prompt",
    "render_form",
    "DirectoryLister",
]
