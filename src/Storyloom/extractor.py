"""Plain-value extraction for Notion property values.

Notion hands every property back as a kind-tagged object, e.g.::

    {"id": "a%3Bc", "type": "select", "select": {"name": "Protagonist"}}

Each supported kind is one pydantic model in the ``PropertyValue`` tagged
union (discriminated on ``type``) and knows how to reduce itself to a plain
scalar, list or string. Everything downstream of ``extract_value`` only ever
sees those plain values.

Values that are not a mapping tagged with a known kind pass through
unchanged, so extraction is idempotent and already-plain fixtures are
accepted as-is.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Any, Literal, Union, get_args

import structlog
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

log = structlog.get_logger()


class _Segment(BaseModel):
    plain_text: str = ""


class _Option(BaseModel):
    name: str | None = None


class _Ref(BaseModel):
    id: str


class _User(BaseModel):
    id: str | None = None
    name: str | None = None


class _UrlHolder(BaseModel):
    url: str | None = None


class _File(BaseModel):
    name: str | None = None
    file: _UrlHolder | None = None
    external: _UrlHolder | None = None

    def plain(self) -> str | None:
        if self.name:
            return self.name
        holder = self.external or self.file
        return holder.url if holder else None


class _DateRange(BaseModel):
    start: str | None = None
    end: str | None = None


class _Value(BaseModel):
    model_config = dict(extra="ignore")


class TitleValue(_Value):
    type: Literal["title"]
    title: list[_Segment] = Field(default_factory=list)

    def plain(self) -> str:
        return "".join(seg.plain_text for seg in self.title)


class RichTextValue(_Value):
    type: Literal["rich_text"]
    rich_text: list[_Segment] = Field(default_factory=list)

    def plain(self) -> str:
        return "".join(seg.plain_text for seg in self.rich_text)


class SelectValue(_Value):
    type: Literal["select"]
    select: _Option | None = None

    def plain(self) -> str | None:
        return self.select.name if self.select else None


class StatusValue(_Value):
    type: Literal["status"]
    status: _Option | None = None

    def plain(self) -> str | None:
        return self.status.name if self.status else None


class MultiSelectValue(_Value):
    type: Literal["multi_select"]
    multi_select: list[_Option] = Field(default_factory=list)

    def plain(self) -> list[str]:
        return [opt.name for opt in self.multi_select if opt.name]


class DateValue(_Value):
    type: Literal["date"]
    date: _DateRange | None = None

    def plain(self) -> str | None:
        return self.date.start if self.date else None


class RelationValue(_Value):
    type: Literal["relation"]
    relation: list[_Ref] = Field(default_factory=list)

    def plain(self) -> list[str]:
        return [ref.id for ref in self.relation]


class PeopleValue(_Value):
    type: Literal["people"]
    people: list[_User] = Field(default_factory=list)

    def plain(self) -> list[str]:
        return [user.name for user in self.people if user.name]


class UserValue(_Value):
    type: Literal["created_by", "last_edited_by"]
    created_by: _User | None = None
    last_edited_by: _User | None = None

    def plain(self) -> str:
        user = self.created_by if self.type == "created_by" else self.last_edited_by
        return (user.name or "") if user else ""


class FilesValue(_Value):
    type: Literal["files"]
    files: list[_File] = Field(default_factory=list)

    def plain(self) -> list[str]:
        return [p for p in (f.plain() for f in self.files) if p]


class ScalarValue(BaseModel):
    """Kinds whose payload already is the plain value, keyed by the kind name."""

    type: Literal[
        "number",
        "checkbox",
        "url",
        "email",
        "phone_number",
        "created_time",
        "last_edited_time",
    ]

    model_config = dict(extra="allow")

    def plain(self) -> Any:
        return (self.model_extra or {}).get(self.type)


class UniqueIdValue(_Value):
    type: Literal["unique_id"]
    unique_id: dict[str, Any] = Field(default_factory=dict)

    def plain(self) -> str | None:
        number = self.unique_id.get("number")
        if number is None:
            return None
        prefix = self.unique_id.get("prefix")
        return f"{prefix}-{number}" if prefix else str(number)


def _unwrap_typed(inner: Mapping[str, Any] | None) -> Any:
    # formula/rollup payloads: {"type": "number", "number": 3}
    if not inner:
        return None
    kind = inner.get("type")
    if kind == "date":
        date = inner.get("date") or {}
        return date.get("start") if isinstance(date, Mapping) else None
    if kind == "array":
        return [extract_value(item) for item in inner.get("array") or []]
    return inner.get(kind) if kind else None


class FormulaValue(_Value):
    type: Literal["formula"]
    formula: dict[str, Any] | None = None

    def plain(self) -> Any:
        return _unwrap_typed(self.formula)


class RollupValue(_Value):
    type: Literal["rollup"]
    rollup: dict[str, Any] | None = None

    def plain(self) -> Any:
        return _unwrap_typed(self.rollup)


_MODELS = (
    TitleValue,
    RichTextValue,
    SelectValue,
    StatusValue,
    MultiSelectValue,
    DateValue,
    RelationValue,
    PeopleValue,
    UserValue,
    FilesValue,
    ScalarValue,
    UniqueIdValue,
    FormulaValue,
    RollupValue,
)

PropertyValue = Annotated[Union[_MODELS], Field(discriminator="type")]  # type: ignore[valid-type]

_ADAPTER: TypeAdapter[Any] = TypeAdapter(PropertyValue)

KNOWN_KINDS: frozenset[str] = frozenset(
    kind for model in _MODELS for kind in get_args(model.model_fields["type"].annotation)
)


def extract_value(raw: Any) -> Any:
    """Reduce one raw property value to a plain scalar/list/string."""
    if not isinstance(raw, Mapping) or raw.get("type") not in KNOWN_KINDS:
        return raw
    try:
        value = _ADAPTER.validate_python(raw)
    except ValidationError:
        log.debug("extractor.malformed_value", kind=raw.get("type"))
        return raw
    return value.plain()


def extract_properties(raw_properties: Mapping[str, Any]) -> dict[str, Any]:
    return {key: extract_value(value) for key, value in raw_properties.items()}


def title_of(raw_properties: Mapping[str, Any]) -> str | None:
    """Plain text of the title-kind property, if the bag has one."""
    for value in raw_properties.values():
        if isinstance(value, Mapping) and value.get("type") == "title":
            text = extract_value(value)
            if isinstance(text, str):
                return text
    return None


__all__ = ["PropertyValue", "KNOWN_KINDS", "extract_value", "extract_properties", "title_of"]
