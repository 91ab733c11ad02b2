"""
=============================================================================
ACCESS LOGGING MIDDLEWARE
=============================================================================

One log entry per request, in either a Common-Log-like text line or a
JSON object:

    text:  203.0.113.7 - - [18/Oct/2026:10:00:00 +0000] "gemini://host/" 20 text/gemini 1234 0.41ms
    json:  {"client_ip": "203.0.113.7", "url": "gemini://host/", "status": 20, ...}

The entry is written to the "geminiserver.access" logger so it can be
routed separately from diagnostic logs:

    logging.getLogger("geminiserver.access").addHandler(file_handler)

Requests that never produce a response (framing errors) are not seen by
middleware; the connection handler logs those at DEBUG.

=============================================================================
"""

import time
import json
import logging
from dataclasses import dataclass, asdict

from .base import Middleware, NextHandler
from ..gemini.request import GeminiRequest
from ..gemini.response import Response


logger = logging.getLogger("geminiserver.access")


@dataclass
class RequestLog:
    """
    Structured log entry for a request.

    client_ip:    Client's IP address
    url:          The request URL as sent
    status:       Two-digit Gemini status
    meta:         Response meta (MIME type, prompt or error message)
    body_size:    Body length in bytes (0 when there is no body)
    duration_ms:  Handler time
    timestamp:    When the request was processed
    """

    client_ip: str
    url: str
    status: int
    meta: str
    body_size: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.url}" {self.status} {self.meta} '
            f'{self.body_size} {self.duration_ms:.2f}ms'
        )


class AccessLogMiddleware(Middleware):
    """
    Request logging middleware.

    Should be added FIRST so its timing covers every other middleware
    and it sees responses produced by short-circuits.

        pipeline.add(AccessLogMiddleware(log_format="json"))
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        self.log_format = log_format
        self.log_level = log_level

    def __call__(self, request: GeminiRequest, next: NextHandler) -> Response:
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.url} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        entry = RequestLog(
            client_ip=request.client_ip or "-",
            url=request.url,
            status=int(response.status),
            meta=response.meta,
            body_size=len(response.body) if response.body is not None else 0,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())

        return response
