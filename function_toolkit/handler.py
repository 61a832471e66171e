from __future__ import annotations

import functools
import inspect
from typing import Any, Awaitable, Callable

from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from function_toolkit.config import Settings, get_settings
from function_toolkit.context import FunctionContext
from function_toolkit.errors import UnrecoverableResponseError
from function_toolkit.observability.logging import configure_logging
from function_toolkit.response import BufferedResponseWriter

FunctionBody = Callable[[FunctionContext], "Awaitable[None] | None"]


def function_handler(fn: FunctionBody, *, settings: Settings | None = None) -> Callable[[Request], Awaitable[Response]]:
    """
    Turn `fn(ctx)` into a Starlette endpoint.

    Settings and the logging mode are resolved once, when the handler is
    declared, so every request of the process logs the same way.
    """

    settings = settings or get_settings()
    mode = settings.logging_mode
    configure_logging(mode, settings.log_level)

    @functools.wraps(fn)
    async def endpoint(request: Request) -> Response:
        writer = BufferedResponseWriter()
        ctx = FunctionContext(
            request,
            writer,
            mode=mode,
            correlation_id_length=settings.correlation_id_length,
            correlation_header=settings.correlation_header,
        )

        try:
            result: Any = fn(ctx)
            if inspect.isawaitable(result):
                await result
        except UnrecoverableResponseError:
            if writer.started:
                # Status line already went out; let the server drop the connection.
                raise
            return PlainTextResponse(
                "Internal Server Error",
                status_code=500,
                headers={settings.correlation_header: ctx.correlation_id},
            )

        if not writer.started:
            ctx.warnf("Handler %s returned without writing a response", fn.__name__)
        return writer.to_response()

    return endpoint
