from __future__ import annotations

from dataclasses import dataclass

from starlette.requests import Request

_STATE_KEY = "function_toolkit_body"


@dataclass
class RequestBodyState:
    """Body bytes and disconnect flag shared by every context over one request."""

    body: bytes | None = None
    disconnected: bool = False


def body_state(request: Request) -> RequestBodyState:
    # request.state lives in the ASGI scope, so it outlives any single Request wrapper.
    state = getattr(request.state, _STATE_KEY, None)
    if state is None:
        state = RequestBodyState()
        setattr(request.state, _STATE_KEY, state)
    return state
