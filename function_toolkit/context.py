from __future__ import annotations

import copy
import json
import secrets
from enum import IntEnum
from typing import Any, TypeVar, overload

import structlog
from pydantic import BaseModel, ValidationError
from starlette.requests import ClientDisconnect, Request

from function_toolkit.cancellation import CancellationToken
from function_toolkit.config import LoggingMode
from function_toolkit.errors import BodyDecodeError, BodyReadError, UnrecoverableResponseError
from function_toolkit.models.schemas import ErrorEnvelope, SuccessEnvelope
from function_toolkit.request_state import body_state
from function_toolkit.response import ResponseWriter

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
CORRELATION_HEADER = "X-Correlation-ID"

ModelT = TypeVar("ModelT", bound=BaseModel)


class LogLevel(IntEnum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3


_LEVEL_METHODS = {
    LogLevel.DEBUG: "debug",
    LogLevel.INFO: "info",
    LogLevel.WARN: "warning",
    LogLevel.ERROR: "error",
}


MIN_CORRELATION_ID_LENGTH = 4
MAX_CORRELATION_ID_LENGTH = 64


def generate_correlation_id(length: int = 10) -> str:
    if not MIN_CORRELATION_ID_LENGTH <= length <= MAX_CORRELATION_ID_LENGTH:
        raise ValueError(
            f"correlation id length must be between {MIN_CORRELATION_ID_LENGTH} and {MAX_CORRELATION_ID_LENGTH}, got {length}"
        )
    # token_urlsafe yields ~1.3 chars per byte; trim to the requested length.
    return secrets.token_urlsafe(length)[:length]


class FunctionContext:
    """
    Per-request helper wrapping one inbound request and its response sink.

    Every log line is tagged with the context's correlation id: as a structured
    `correlation_id` field in STRUCTURED mode, or as a "[id] " prefix in CONSOLE
    mode. The same id is echoed in the response envelope and header.
    """

    def __init__(
        self,
        request: Request,
        response: ResponseWriter,
        *,
        mode: LoggingMode = LoggingMode.STRUCTURED,
        correlation_id_length: int = 10,
        correlation_header: str = CORRELATION_HEADER,
    ) -> None:
        self._correlation_id = generate_correlation_id(correlation_id_length)
        self.request = request
        self.response = response
        self.mode = mode
        self.correlation_header = correlation_header
        self.cancellation = CancellationToken.from_request(request)

        logger = structlog.get_logger("function_toolkit")
        if mode is LoggingMode.STRUCTURED:
            self.logger = logger.bind(correlation_id=self._correlation_id)
            self._prefix = ""
        else:
            self.logger = logger
            self._prefix = f"[{self._correlation_id}] "

    @property
    def correlation_id(self) -> str:
        return self._correlation_id

    def with_cancellation(self, token: CancellationToken) -> FunctionContext:
        derived = copy.copy(self)
        derived.cancellation = token
        return derived

    # -- logging -----------------------------------------------------------

    def log(self, level: int, message: str, *, source: str | None = None) -> None:
        try:
            method = _LEVEL_METHODS[LogLevel(level)]
        except ValueError:
            method = "debug"
        self._emit(method, message, source)

    def logf(self, level: int, fmt: str, *args: Any, source: str | None = None) -> None:
        self.log(level, _format(fmt, args), source=source)

    def debug(self, message: str, *, source: str | None = None) -> None:
        self._emit("debug", message, source)

    def info(self, message: str, *, source: str | None = None) -> None:
        self._emit("info", message, source)

    def warn(self, message: str, *, source: str | None = None) -> None:
        self._emit("warning", message, source)

    def error(self, message: str, *, source: str | None = None) -> None:
        self._emit("error", message, source)

    def debugf(self, fmt: str, *args: Any, source: str | None = None) -> None:
        self._emit("debug", _format(fmt, args), source)

    def infof(self, fmt: str, *args: Any, source: str | None = None) -> None:
        self._emit("info", _format(fmt, args), source)

    def warnf(self, fmt: str, *args: Any, source: str | None = None) -> None:
        self._emit("warning", _format(fmt, args), source)

    def errorf(self, fmt: str, *args: Any, source: str | None = None) -> None:
        self._emit("error", _format(fmt, args), source)

    def _emit(self, method: str, message: str, source: str | None) -> None:
        fields: dict[str, Any] = {}
        if source:
            fields["source"] = source
        getattr(self.logger, method)(self._prefix + message, **fields)

    def _fatal(self, message: str, exc: BaseException) -> UnrecoverableResponseError:
        text = f"{message}: {exc}"
        self.logger.critical(self._prefix + text)
        return UnrecoverableResponseError(text)

    # -- request accessors -------------------------------------------------

    def has_query_parameter(self, name: str) -> bool:
        return name in self.request.query_params

    def get_query_parameter(self, name: str) -> str:
        return self.request.query_params.get(name, "")

    def get_header(self, name: str) -> str:
        return self.request.headers.get(name, "")

    async def read_body(self) -> bytes:
        """
        Read the request body.

        Reads until the declared Content-Length is reached (or EOF when none is
        declared). Bytes past the declared length are ignored. The result is kept
        on the request, so every context over it sees the same bytes.
        """
        state = body_state(self.request)
        if state.body is not None:
            return state.body

        declared = self._declared_length()
        buffer = bytearray()
        try:
            async for chunk in self.request.stream():
                buffer.extend(chunk)
                if declared is not None and len(buffer) >= declared:
                    break
        except ClientDisconnect as exc:
            state.disconnected = True
            raise BodyReadError("Client disconnected while sending the body") from exc
        except RuntimeError as exc:
            # Starlette raises RuntimeError when the stream was already consumed.
            raise BodyReadError(f"Could not read request body: {exc}") from exc

        if declared is not None:
            if len(buffer) < declared:
                raise BodyReadError(f"Request body is shorter than declared: expected {declared} bytes, got {len(buffer)}")
            del buffer[declared:]

        state.body = bytes(buffer)
        return state.body

    def _declared_length(self) -> int | None:
        raw = self.request.headers.get("content-length")
        if raw is None or raw == "":
            return None
        try:
            declared = int(raw)
        except ValueError as exc:
            raise BodyReadError(f"Invalid Content-Length header: {raw!r}") from exc
        if declared < 0:
            raise BodyReadError(f"Invalid Content-Length header: {raw!r}")
        return declared

    @overload
    async def read_json_body(self) -> Any: ...

    @overload
    async def read_json_body(self, model: type[ModelT]) -> ModelT: ...

    async def read_json_body(self, model: type[BaseModel] | None = None) -> Any:
        body = await self.read_body()
        if model is not None:
            try:
                return model.model_validate_json(body)
            except ValidationError as exc:
                raise BodyDecodeError(f"Request body does not match {model.__name__}: {exc}") from exc
        try:
            return json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise BodyDecodeError(f"Request body is not valid JSON: {exc}") from exc

    # -- response writers --------------------------------------------------

    def set_response_header(self, name: str, value: str) -> None:
        self.response.headers[name] = value

    def write_raw(self, content_type: str, data: bytes) -> None:
        self.info("Finished processing the request")

        headers = self.response.headers
        headers[self.correlation_header] = self._correlation_id
        headers["Content-Type"] = content_type

        self.response.write_header(200)
        self._send(data)

    def write_json(self, value: Any = None) -> None:
        self.debug("Generating JSON response")
        envelope = SuccessEnvelope(correlation_id=self._correlation_id, data=value)
        try:
            payload = envelope.model_dump_json(by_alias=True).encode("utf-8")
        except Exception as exc:  # noqa: BLE001 - pydantic raises several serialization error types
            raise self._fatal("Could not serialize object", exc) from exc
        self.write_raw(JSON_CONTENT_TYPE, payload)

    def fail(self, status_code: int, message: str) -> None:
        self.report_error(status_code, None, message)

    def report_error(self, status_code: int, error: BaseException | None, message: str) -> None:
        if error is not None:
            self.errorf('Request failed (error code %d) "%s": %s', status_code, message, error)
        else:
            self.errorf('Request failed (error code %d) "%s"', status_code, message)

        headers = self.response.headers
        headers[self.correlation_header] = self._correlation_id
        headers["Content-Type"] = JSON_CONTENT_TYPE

        envelope = ErrorEnvelope(correlation_id=self._correlation_id, error_code=status_code, message=message)
        try:
            payload = envelope.model_dump_json(by_alias=True).encode("utf-8")
        except Exception as exc:  # noqa: BLE001
            raise self._fatal("Could not serialize the error to JSON", exc) from exc

        self.response.write_header(status_code)
        self._send(payload)

    def _send(self, data: bytes) -> None:
        try:
            self.response.write(data)
        except Exception as exc:  # noqa: BLE001 - any sink failure is unrecoverable
            raise self._fatal("Could not send response to user", exc) from exc


def _format(fmt: str, args: tuple[Any, ...]) -> str:
    return fmt % args
