"""
=============================================================================
GEMINI SERVER
=============================================================================

The server ties the layers together:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   SocketServer  ── accept() ──► _handle_connection()  (accept thread)│
    │                                      │                               │
    │                         ThreadPool.submit(block=False)               │
    │                           │                    │                     │
    │                       queued               queue full                │
    │                           │                    │                     │
    │                           ▼                    ▼                     │
    │   _process_connection()  (worker)         _reject() (own thread)    │
    │       1. TLS handshake                     "41 Server unavailable"   │
    │       2. read one request line                                       │
    │       3. respond(): parse → middleware → handler                     │
    │       4. send, close (TLS close_notify)                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ERROR OUTCOMES
=============================================================================

    Handshake failure / framing error      → close, nothing written
    UrlParseError / SchemeError            → 59
    NotFound and subclasses                → 51
    InternalReadFailure, any other crash   → 40 (logged with traceback)
    Pool saturated                         → 41
    Pool saturated, 16 rejections pending  → close, nothing written

Whatever goes wrong for one client, the accept loop keeps running.

=============================================================================
"""

import ssl
import threading
import logging
from typing import Optional, Callable, Tuple

from .config import ServerConfig
from .core import SocketServer, Connection, ConnectionState, ThreadPool
from .gemini import (
    FramingError,
    GeminiError,
    GeminiRequest,
    RequestParser,
    Response,
    server_unavailable,
    temporary_failure,
)
from .handlers import StaticFileHandler
from .middleware import MiddlewarePipeline, Middleware


logger = logging.getLogger(__name__)

# Budget for handshaking a connection we are turning away
REJECT_TIMEOUT = 1.0

# Rejections in flight at once; beyond this a connection is just closed
MAX_REJECTIONS = 16


class GeminiServer:
    """
    Multi-threaded Gemini server.

    =========================================================================
    USAGE
    =========================================================================

        config = ServerConfig(content_root="/srv/gemini")
        server = GeminiServer(config, tls_context=create_tls_context(config))
        server.use(AccessLogMiddleware())
        server.run()   # blocks until SIGINT/SIGTERM or shutdown()

    A custom handler (any GeminiRequest → Response callable) replaces the
    static file handler:

        server = GeminiServer(config, tls_context=ctx, handler=my_app)

    Without a TLS context the server speaks the protocol in plaintext,
    which is only useful behind a TLS-terminating proxy.

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        tls_context: Optional[ssl.SSLContext] = None,
        handler: Optional[Callable[[GeminiRequest], Response]] = None,
    ):
        """
        Args:
            config: Server configuration. Uses defaults if not provided.
            tls_context: Server-side TLS context (see geminiserver.tls).
            handler: Request handler. Defaults to a StaticFileHandler on
                     config.content_root.

        Raises:
            ConfigError: Invalid configuration.
            ValueError: The content root does not exist.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self._tls_context = tls_context

        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._rejections = threading.BoundedSemaphore(MAX_REJECTIONS)

        if handler is None:
            handler = StaticFileHandler(
                self.config.content_root,
                index_file=self.config.index_file,
                form_suffix=self.config.form_suffix,
                show_hidden=self.config.show_hidden,
            ).handle
        self._app = handler

        self._middleware = MiddlewarePipeline()
        self._handler: Callable[[GeminiRequest], Response] = self._app
        self._running = False

    def use(self, middleware: Middleware) -> "GeminiServer":
        """
        Add middleware to the server.

        Must be called before run(). Returns self for chaining.
        """
        self._middleware.add(middleware)
        self._handler = self._middleware.wrap(self._app)
        return self

    @property
    def address(self) -> Tuple[str, int]:
        return self._socket_server.address

    @property
    def is_running(self) -> bool:
        return self._running

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the listening socket is open."""
        return self._socket_server.wait_until_ready(timeout)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def run(self):
        """
        Start the server (blocking).

        Returns after shutdown() or SIGINT/SIGTERM, once in-flight
        connections have drained.
        """
        self._setup_logging()

        if self._tls_context is None:
            logger.warning("No TLS context: serving plaintext Gemini")

        self._running = True
        self._thread_pool.start()

        host, port = self.config.host, self.config.port
        logger.info(
            f"Starting Gemini server on {host}:{port} "
            f"serving {self.config.content_root} "
            f"({self.config.min_workers}-{self.config.max_workers} workers)"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Stop accepting connections. run() returns shortly after."""
        self._socket_server.shutdown()

    def _setup_logging(self):
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            filename=self.config.log_file,
            # Only applies to log_file; undecodable request paths stay loggable
            encoding="utf-8",
            errors="backslashreplace",
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("geminiserver").setLevel(level)

    def _shutdown(self):
        logger.info("Shutting down server...")
        self._running = False
        self._thread_pool.shutdown(wait=True, timeout=self.config.timeout or 30.0)
        logger.info(f"Server stopped: {self._thread_pool.stats['tasks']}")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Queue a connection for a worker (runs on the accept thread).

        Never blocks on a full queue; the connection is turned away
        with "41 Server unavailable" instead.
        """
        try:
            submitted = self._thread_pool.submit(
                self._process_connection,
                args=(conn,),
                block=False,
            )
        except RuntimeError:
            submitted = False  # Pool is shutting down

        if not submitted:
            logger.warning(f"[{conn.id}] Thread pool full, rejecting {conn.client_ip}")
            self._start_rejection(conn)

    def _start_rejection(self, conn: Connection):
        """
        Deliver "41" on a short-lived thread.

        The handshake of a rejected client can take up to REJECT_TIMEOUT
        and must not stall the accept loop.
        """
        if not self._rejections.acquire(blocking=False):
            logger.debug(f"[{conn.id}] Too many rejections in flight, closing")
            conn.close()
            return

        threading.Thread(
            target=self._reject,
            args=(conn,),
            name=f"Reject-{conn.id}",
            daemon=True,
        ).start()

    def _reject(self, conn: Connection):
        try:
            with conn:
                try:
                    conn.socket.settimeout(REJECT_TIMEOUT)
                    if self._tls_context is not None:
                        conn.start_tls(self._tls_context)
                    conn.send_response(server_unavailable().to_bytes())
                except OSError as e:
                    logger.debug(f"[{conn.id}] Could not deliver rejection: {e}")
        finally:
            self._rejections.release()

    def _process_connection(self, conn: Connection):
        """
        Serve exactly one request (runs in a worker thread).

        The connection is closed on every path, including failures.
        """
        with conn:
            try:
                if self._tls_context is not None:
                    conn.start_tls(self._tls_context)
                line = conn.read_request_line()
            except FramingError as e:
                logger.debug(f"[{conn.id}] Dropping connection: {e}")
                return
            except OSError as e:
                # ssl.SSLError is an OSError too
                logger.debug(f"[{conn.id}] Connection failed before request: {e}")
                return

            conn.state = ConnectionState.PROCESSING
            response = self.respond(line, conn.address)
            conn.send_response(response.to_bytes())

    def respond(
        self,
        line: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> Response:
        """
        Produce the response for one request line (CRLF already removed).

        This is the whole request pipeline minus the socket, which makes
        it convenient to call directly.
        """
        try:
            request = self._parser.parse(line, client_address)
        except GeminiError as e:
            logger.info(f"Rejected request from {client_address[0] or '-'}: {e}")
            return e.to_response()

        logger.debug(f"Request from {request.client_ip or '-'}: {request.url}")

        try:
            return self._handler(request)
        except GeminiError as e:
            logger.info(f"{request.url}: {type(e).__name__}: {e}")
            return e.to_response() or temporary_failure()
        except Exception as e:
            logger.exception(f"Handler error for {request.url}: {e}")
            return temporary_failure()
