from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SerializerFunctionWrapHandler, model_serializer


class SuccessEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    correlation_id: str = Field(alias="correlationId")
    data: Any = None

    @model_serializer(mode="wrap")
    def _omit_missing_data(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        payload = handler(self)
        if self.data is None:
            payload.pop("data", None)
        return payload


class ErrorEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    correlation_id: str = Field(alias="correlationId")
    error_code: int = Field(alias="errorCode")
    message: str = ""

    @model_serializer(mode="wrap")
    def _omit_empty_message(self, handler: SerializerFunctionWrapHandler) -> dict[str, Any]:
        payload = handler(self)
        if not self.message:
            payload.pop("message", None)
        return payload
