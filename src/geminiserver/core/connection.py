"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module handles individual client connections: the TLS handshake,
reading the single request line, writing the response and closing.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP (and TLS on top of it) does NOT preserve message boundaries. A client
that writes its request in one call may still have it arrive in pieces:

    Client sends:
        "gemini://example.org/\r\n"

    Server might receive:
        recv() → "gemini://exa"
        recv() → "mple.org/\r\n"

So we buffer what we receive and look for the CRLF delimiter.

=============================================================================
THE BOUNDED READ
=============================================================================

A Gemini request line is at most 1024 bytes plus CRLF. The reader never
holds more than that:

    ┌─────────────────────────────────────────────────────────────────┐
    │   capacity = 1024 + 2 = 1026 bytes                               │
    │                                                                  │
    │   while no CRLF in buffer:                                       │
    │       buffer full?      → FramingError      (line too long)      │
    │       recv(capacity - len(buffer))                               │
    │       got b""?          → UnexpectedClose   (peer went away)     │
    │                                                                  │
    │   return buffer[:first CRLF]                                     │
    └─────────────────────────────────────────────────────────────────┘

Each recv() asks for at most the space left in the buffer, so a client
that streams megabytes at us costs at most 1026 bytes of memory.
Anything after the first CRLF is ignored.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► HANDSHAKING ──► READING ──► PROCESSING ──► WRITING ──┐
     │           │              │                                  │
     │           │              │  (framing error: no response)    │
     │           ▼              ▼                                  ▼
     └────────────────────► CLOSING ◄──────────────────────────────┘
                               │
                               ▼
                            CLOSED

One connection carries exactly one request. There is no keep-alive.

=============================================================================
"""

import socket
import ssl
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid

from ..gemini.errors import FramingError, UnexpectedClose
from ..gemini.request import MAX_REQUEST_LENGTH


logger = logging.getLogger(__name__)

CRLF = b"\r\n"


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"                  # Just accepted
    HANDSHAKING = "handshaking"  # TLS handshake in progress
    READING = "reading"          # Reading the request line
    PROCESSING = "processing"    # Handler is building the response
    WRITING = "writing"          # Sending the response
    CLOSING = "closing"          # Shutdown sequence
    CLOSED = "closed"            # Socket released


@dataclass
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. TLS                                                              │
    │     └── Wrap the accepted socket and run the handshake               │
    │     └── Runs on the worker thread, never on the accept loop          │
    │                                                                      │
    │  2. BOUNDED READING                                                  │
    │     └── Exactly one CRLF-terminated line, at most 1024 bytes         │
    │                                                                      │
    │  3. WRITING                                                          │
    │     └── sendall() the serialized response                            │
    │                                                                      │
    │  4. GRACEFUL CLOSE                                                   │
    │     └── TLS close_notify, then TCP shutdown and close                │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket (an SSLSocket after start_tls()).
        address: Client's (ip, port) tuple.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when connection was accepted.
        timeout: Socket timeout for the handshake, read and write.
        max_request_size: Longest accepted request line, without CRLF.
    """

    socket: socket.socket
    address: tuple[str, int]

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    timeout: Optional[float] = 30.0
    max_request_size: int = MAX_REQUEST_LENGTH

    def __post_init__(self):
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    @property
    def is_tls(self) -> bool:
        return isinstance(self.socket, ssl.SSLSocket)

    # =========================================================================
    # TLS
    # =========================================================================

    def start_tls(self, context: ssl.SSLContext) -> None:
        """
        Wrap the socket in TLS and complete the handshake.

        The socket is wrapped with do_handshake_on_connect=False so the
        handshake happens here, on the calling (worker) thread, bounded
        by the connection timeout.

        Raises:
            ssl.SSLError: Handshake failed (bad client, wrong protocol).
            OSError: Peer disconnected or timed out mid-handshake.
        """
        self.state = ConnectionState.HANDSHAKING
        self.socket = context.wrap_socket(
            self.socket,
            server_side=True,
            do_handshake_on_connect=False,
        )
        self.socket.do_handshake()
        logger.debug(f"[{self.id}] TLS established: {self.socket.version()}")

    # =========================================================================
    # READING
    # =========================================================================

    def read_request_line(self) -> bytes:
        """
        Read one CRLF-terminated request line.

        Returns:
            The bytes before the first CRLF (terminator excluded).

        Raises:
            UnexpectedClose: Stream ended before a CRLF arrived.
            FramingError: Buffer filled without a CRLF, or read timed out.
        """
        self.state = ConnectionState.READING
        capacity = self.max_request_size + len(CRLF)
        buffer = b""

        try:
            while True:
                end = buffer.find(CRLF)
                if end != -1:
                    return buffer[:end]

                if len(buffer) >= capacity:
                    raise FramingError(
                        f"Request line exceeds {self.max_request_size} bytes"
                    )

                chunk = self._recv(capacity - len(buffer))
                if not chunk:
                    if buffer:
                        raise UnexpectedClose(
                            f"Connection closed after {len(buffer)} bytes without CRLF"
                        )
                    raise UnexpectedClose("Connection closed before any request bytes")

                buffer += chunk
        except socket.timeout:
            raise FramingError("Request read timed out") from None

    def _recv(self, size: int) -> bytes:
        """
        Receive at most ``size`` bytes.

        Returns:
            Received bytes, or empty bytes if the peer is gone.
        """
        try:
            return self.socket.recv(size)
        except (ConnectionResetError, BrokenPipeError, ssl.SSLZeroReturnError, ssl.SSLEOFError):
            return b""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send response data to the client.

        Returns:
            True if send succeeded, False if connection lost.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection gracefully.

        1. unwrap(): send the TLS close_notify alert
           └── Gemini clients use it to tell a complete response from a
               truncated one
        2. shutdown(SHUT_WR): send FIN
        3. close(): release the file descriptor

        Each step is best effort; the peer may already be gone.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.settimeout(0.5)
            if isinstance(self.socket, ssl.SSLSocket):
                self.socket = self.socket.unwrap()
        except (OSError, ValueError):
            pass

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    # =========================================================================
    # CONTEXT MANAGER
    # =========================================================================

    def __enter__(self):
        """
        Allows using Connection with 'with' statement:

            with conn:
                line = conn.read_request_line()
                conn.send_response(data)
            # Connection automatically closed here
        """
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
