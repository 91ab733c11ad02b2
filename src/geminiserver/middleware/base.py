"""
=============================================================================
MIDDLEWARE PIPELINE
=============================================================================

Middleware wraps the request handler to add behaviour that applies to
every request (access logging, for one) without touching the handler.

    pipeline.add(AccessLogMiddleware())     # first added = outermost
    handler = pipeline.wrap(static.handle)

            ┌─────────────────────────────────────────────┐
            │  AccessLogMiddleware                        │
            │  ┌───────────────────────────────────────┐  │
            │  │         FINAL HANDLER                 │  │
            │  │     (StaticFileHandler.handle)        │  │
            │  └───────────────────────────────────────┘  │
            └─────────────────────────────────────────────┘

The request flows inward, the Response flows back out. A middleware
may also short-circuit by returning a Response without calling next.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional
import logging

from ..gemini.request import GeminiRequest
from ..gemini.response import Response


logger = logging.getLogger(__name__)

# The next middleware or the final handler
NextHandler = Callable[[GeminiRequest], Response]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class MyMiddleware(Middleware):
            def __call__(self, request, next):
                if not self.allowed(request):
                    return not_found()       # Short-circuit
                response = next(request)     # Continue the chain
                return response
    """

    @abstractmethod
    def __call__(self, request: GeminiRequest, next: NextHandler) -> Response:
        pass

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """Chains middleware around a final handler."""

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """
        Add middleware to the pipeline.

        Middleware is executed in the order added (first added = outermost).
        """
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def use(self, *middleware: Middleware) -> "MiddlewarePipeline":
        for mw in middleware:
            self.add(mw)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Wrap a handler with all middleware in the pipeline.

        Given [MW1, MW2] and handler the result calls
        MW1 → MW2 → handler. We wrap in REVERSE order so that the
        first-added middleware ends up outermost.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._create_wrapped_handler(middleware, current)
        return current

    def _create_wrapped_handler(
        self,
        middleware: Middleware,
        next_handler: NextHandler
    ) -> NextHandler:
        def wrapped(request: GeminiRequest) -> Response:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)


class FunctionMiddleware(Middleware):
    """
    Wraps a plain ``(request, next) -> Response`` function as middleware.

        @function_middleware
        def hide_drafts(request, next):
            if "/drafts/" in request.path:
                return not_found()
            return next(request)

        pipeline.add(hide_drafts)
    """

    def __init__(
        self,
        func: Callable[[GeminiRequest, NextHandler], Response],
        name: Optional[str] = None
    ):
        self._func = func
        self._name = name or func.__name__

    def __call__(self, request: GeminiRequest, next: NextHandler) -> Response:
        return self._func(request, next)

    @property
    def name(self) -> str:
        return self._name


def function_middleware(
    func: Callable[[GeminiRequest, NextHandler], Response]
) -> FunctionMiddleware:
    """Decorator form of FunctionMiddleware."""
    return FunctionMiddleware(func)
