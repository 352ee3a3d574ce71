"""
Action Gateway result models.

Every mutation returns exactly one of two shapes:

    {"success": true,  "data": ...}
    {"success": false, "error": "message" | {"field": ["message", ...]}}

Anything else is a defect in the gateway, not something to interpret.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

FormErrors = dict[str, list[str]]


class GatewayProtocolError(Exception):
    """A gateway returned something other than GatewaySuccess or GatewayFailure."""


class GatewaySuccess(BaseModel):
    model_config = {"extra": "forbid"}

    success: Literal[True] = True
    data: Any = None


class GatewayFailure(BaseModel):
    model_config = {"extra": "forbid"}

    success: Literal[False] = False
    error: str | FormErrors

    @property
    def message(self) -> str:
        """One-line description for a toast."""
        if isinstance(self.error, str):
            return self.error
        parts = [f"{field}: {'; '.join(msgs)}" for field, msgs in self.error.items()]
        return "Invalid data provided. " + " ".join(parts)

    @property
    def field_errors(self) -> FormErrors:
        return self.error if isinstance(self.error, dict) else {}


GatewayResult = GatewaySuccess | GatewayFailure

_result_adapter: TypeAdapter[GatewayResult] = TypeAdapter(GatewayResult)


def parse_gateway_result(raw: Any) -> GatewaySuccess | GatewayFailure:
    """
    Accept a gateway result (model or plain dict) and return the typed shape.

    Raises:
        GatewayProtocolError: raw is neither shape
    """
    if isinstance(raw, GatewaySuccess | GatewayFailure):
        return raw
    try:
        return _result_adapter.validate_python(raw)
    except PydanticValidationError as e:
        raise GatewayProtocolError(f"malformed gateway result: {raw!r}") from e


def form_errors(exc: PydanticValidationError, form: type[BaseModel] | None = None) -> FormErrors:
    """
    Flatten a pydantic ValidationError into field → messages.

    Nested locations are dotted ("evaluations.0.review"). Where the form
    declares a message for a required field, that message is used for
    missing and empty values.
    """
    errors: FormErrors = {}
    for err in exc.errors():
        loc = [str(part) for part in err["loc"]]
        field = ".".join(loc) or "__root__"
        msg = err["msg"]
        if form is not None and err["type"] in ("missing", "string_too_short"):
            msg = _declared_message(form, loc) or msg
        errors.setdefault(field, []).append(msg)
    return errors


def first_error(errors: FormErrors) -> tuple[str, str]:
    """The first (field, message) pair, for one-line import errors."""
    for field, msgs in errors.items():
        return field, msgs[0] if msgs else ""
    return "", ""


def _declared_message(form: type[BaseModel], loc: list[str]) -> str | None:
    model: type[BaseModel] | None = form
    info = None
    for part in loc:
        if model is None or part.isdigit():
            continue
        info = model.model_fields.get(part)
        if info is None:
            return None
        model = _item_model(info.annotation)
    if info is None or not isinstance(info.json_schema_extra, dict):
        return None
    message = info.json_schema_extra.get("error")
    return message if isinstance(message, str) else None


def _item_model(annotation: Any) -> type[BaseModel] | None:
    """The BaseModel inside list[Model] / Model | None annotations, if any."""
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return annotation
    for arg in getattr(annotation, "__args__", ()):
        found = _item_model(arg)
        if found is not None:
            return found
    return None
