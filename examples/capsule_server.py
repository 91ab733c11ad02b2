"""
=============================================================================
EXAMPLE: EMBEDDING THE SERVER
=============================================================================

Runs the sample capsule with JSON access logs and one extra piece of
middleware, without going through the command line:

    python examples/capsule_server.py

then point a Gemini client at gemini://localhost:1965/.

    ┌─────────────────────────────────────────────────────────────────┐
    │   AccessLogMiddleware   (outermost: times everything)            │
    │   └── retired_pages     (short-circuits old URLs with 31)        │
    │       └── StaticFileHandler.handle                               │
    └─────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from geminiserver import GeminiServer, ServerConfig
from geminiserver.gemini import redirect
from geminiserver.middleware import AccessLogMiddleware, function_middleware
from geminiserver.tls import create_tls_context


RETIRED = {
    "/hello.gmi": "/greet.form",
    "/blog/": "/notes/",
}


@function_middleware
def retired_pages(request, next):
    target = RETIRED.get(request.path)
    if target is not None:
        return redirect(target, permanent=True)
    return next(request)


def main():
    config = ServerConfig(
        host="127.0.0.1",
        content_root=str(Path(__file__).parent.parent / "content-root"),
        log_level="DEBUG",
        log_format="json",
    )

    server = GeminiServer(config, tls_context=create_tls_context(config))
    server.use(AccessLogMiddleware(log_format=config.log_format))
    server.use(retired_pages)
    server.run()


if __name__ == "__main__":
    main()
