"""JSON response envelope shared by every endpoint."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    """Base for request/response bodies: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SuccessResponse[T](ApiModel):
    """Successful response envelope.

    ```json
    {"success": true, "message": "Login successful", "data": {...}}
    ```
    """

    success: bool = True
    message: str | None = None
    data: T | None = None


class MessageResponse(ApiModel):
    """Envelope for endpoints that only report an outcome."""

    success: bool = True
    message: str


class ErrorResponse(ApiModel):
    """Failure envelope; ``error`` is the stable code clients switch on."""

    success: bool = False
    error: str
    message: str
    details: list[dict] | None = None
    retry_after: int | None = None


__all__ = ["ApiModel", "ErrorResponse", "MessageResponse", "SuccessResponse"]
