from __future__ import annotations

from time import monotonic
from typing import Awaitable, Callable

from starlette.requests import Request

from function_toolkit.errors import RequestCancelledError
from function_toolkit.request_state import body_state

DisconnectProbe = Callable[[], Awaitable[bool]]


class CancellationToken:
    """
    Deadline / cancel signal scoped to one request.

    Tokens form a chain: a child created with with_timeout() is cancelled when its
    parent is, and its deadline is never later than the parent's.
    """

    def __init__(
        self,
        *,
        deadline: float | None = None,
        parent: CancellationToken | None = None,
        probe: DisconnectProbe | None = None,
    ) -> None:
        self._deadline = deadline
        self._parent = parent
        self._probe = probe
        self._cancelled = False

    @classmethod
    def from_request(cls, request: Request) -> CancellationToken:
        async def probe() -> bool:
            state = body_state(request)
            if state.disconnected:
                return True
            if state.body is None:
                # Polling receive() now would swallow body chunks still in flight.
                return False
            return await request.is_disconnected()

        return cls(probe=probe)

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def deadline(self) -> float | None:
        parent_deadline = self._parent.deadline if self._parent is not None else None
        if self._deadline is None:
            return parent_deadline
        if parent_deadline is None:
            return self._deadline
        return min(self._deadline, parent_deadline)

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        if self._parent is not None and self._parent.cancelled:
            return True
        deadline = self.deadline
        return deadline is not None and monotonic() >= deadline

    def remaining(self) -> float | None:
        """Seconds until the deadline (0.0 once passed), None without one."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - monotonic())

    def with_timeout(self, seconds: float) -> CancellationToken:
        if seconds < 0:
            raise ValueError("seconds must be non-negative")
        return CancellationToken(deadline=monotonic() + seconds, parent=self)

    async def is_cancelled(self) -> bool:
        """Like `cancelled`, but also asks the transport whether the client went away."""
        if self.cancelled:
            return True
        token: CancellationToken | None = self
        while token is not None:
            if token._probe is not None and await token._probe():
                return True
            token = token._parent
        return False

    def raise_if_cancelled(self) -> None:
        if self._cancelled or (self._parent is not None and self._parent.cancelled):
            raise RequestCancelledError("Request was cancelled")
        if self.cancelled:
            raise RequestCancelledError("Request deadline exceeded")
