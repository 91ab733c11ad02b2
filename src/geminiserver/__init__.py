"""
=============================================================================
GEMINISERVER: A STATIC GEMINI CAPSULE SERVER
=============================================================================

Gemini is a small request/response protocol: the client sends one URL
over TLS, the server answers with a status line and (on success) a
document, then closes the connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         Package Layout                               │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   core/         sockets, connections, thread pool                    │
    │   gemini/       request parsing, responses, status codes             │
    │   handlers/     static files, directory listings, input forms        │
    │   middleware/   pipeline and access logging                          │
    │   config.py     ServerConfig (file / environment)                    │
    │   tls.py        certificates: PEM, PKCS#12, ad-hoc                   │
    │   server.py     GeminiServer, ties it all together                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Quick start:

    from geminiserver import GeminiServer, ServerConfig
    from geminiserver.tls import create_tls_context

    config = ServerConfig(content_root="capsule")
    GeminiServer(config, tls_context=create_tls_context(config)).run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import GeminiServer
from .config import ServerConfig, ConfigError

__all__ = ["GeminiServer", "ServerConfig", "ConfigError", "__version__"]
