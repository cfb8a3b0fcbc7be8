"""
Typed field values sent to Jira.

Field maps travel from the branch policy table through the executor to the
HTTP payload. Each value is one of a small set of tagged variants so that
"compute this when the request is built" (deployment timestamps) is an
explicit case rather than a bare callable hidden in a dict.
"""

from datetime import date, datetime, timezone
from typing import Annotated, Any, Callable, Literal, Mapping, Union

from pydantic import BaseModel, Field


class StringValue(BaseModel):
    """Plain string field."""
    kind: Literal["string"] = "string"
    value: str

    def resolve(self) -> Any:
        return self.value


class DateValue(BaseModel):
    """Date or datetime field, rendered in Jira's timestamp format."""
    kind: Literal["date"] = "date"
    value: datetime | date

    def resolve(self) -> Any:
        if not isinstance(self.value, datetime):
            return self.value.isoformat()
        value = self.value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return f"{value:%Y-%m-%dT%H:%M:%S}.{value.microsecond // 1000:03d}{value:%z}"


class OptionRef(BaseModel):
    """Reference to a select-list option by id, e.g. a release environment."""
    kind: Literal["option"] = "option"
    id: str

    def resolve(self) -> Any:
        return {"id": self.id}


class NullValue(BaseModel):
    """Clears the field."""
    kind: Literal["null"] = "null"

    def resolve(self) -> Any:
        return None


class JsonValue(BaseModel):
    """Anything else (numbers, lists, objects) passed through untouched."""
    kind: Literal["json"] = "json"
    value: Any

    def resolve(self) -> Any:
        return self.value


class LateBoundValue(BaseModel):
    """Value produced by a factory each time the payload is built."""
    kind: Literal["late"] = "late"
    factory: Callable[[], Any]

    def resolve(self) -> Any:
        return to_field_value(self.factory()).resolve()


FieldValue = Annotated[
    Union[StringValue, DateValue, OptionRef, NullValue, JsonValue, LateBoundValue],
    Field(discriminator="kind"),
]

_VARIANTS = (StringValue, DateValue, OptionRef, NullValue, JsonValue, LateBoundValue)


def to_field_value(raw: Any) -> FieldValue:
    """Coerce a plain Python value into its tagged variant."""
    if isinstance(raw, _VARIANTS):
        return raw
    if raw is None:
        return NullValue()
    if isinstance(raw, str):
        return StringValue(value=raw)
    if isinstance(raw, (datetime, date)):
        return DateValue(value=raw)
    if isinstance(raw, dict) and set(raw) == {"id"}:
        return OptionRef(id=str(raw["id"]))
    if callable(raw):
        return LateBoundValue(factory=raw)
    return JsonValue(value=raw)


def to_field_map(fields: Mapping[str, Any] | None) -> dict[str, FieldValue]:
    """Coerce every value of a field map."""
    return {field_id: to_field_value(value) for field_id, value in (fields or {}).items()}


def resolve_fields(fields: Mapping[str, Any] | None) -> dict[str, Any]:
    """Render a field map into the JSON payload Jira expects."""
    return {field_id: value.resolve() for field_id, value in to_field_map(fields).items()}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
