import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Tuple, Union

from ..core.errors import InvalidProjection, ValidationFault


logger = logging.getLogger(__name__)

ItemId = Union[int, str]


@dataclass(frozen=True)
class FieldSpec:
    name: str
    required: bool = False


@dataclass(frozen=True)
class CollectionSchema:
    """Declared columns of one remote collection.

    ``id_field`` is the store-assigned identifier column. It is never listed
    in ``fields`` and is selected implicitly by every projection.
    """

    name: str
    fields: Tuple[FieldSpec, ...]
    id_field: str = "id"

    def __post_init__(self) -> None:
        names = [f.name for f in self.fields]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate field names in collection {self.name!r}")
        if self.id_field in names:
            raise ValueError(f"Identifier {self.id_field!r} must not be declared as a field of {self.name!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CollectionSchema":
        fields = []
        for entry in data.get("fields", []):
            if isinstance(entry, str):
                fields.append(FieldSpec(entry))
            else:
                fields.append(FieldSpec(entry["name"], bool(entry.get("required", False))))
        return cls(name=data["name"], fields=tuple(fields), id_field=data.get("id_field", "id"))

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    @property
    def required_fields(self) -> Tuple[str, ...]:
        return tuple(f.name for f in self.fields if f.required)

    def has_field(self, name: str) -> bool:
        return name in self.field_names

    def projection(self, *fields: str) -> "Projection":
        return Projection(self, fields)

    def full_projection(self) -> "Projection":
        return Projection(self, self.field_names)

    def check_values(self, values: Mapping[str, Any]) -> None:
        """Reject identifier writes and fields outside the schema."""
        if self.id_field in values:
            raise ValidationFault(
                f"{self.id_field!r} is assigned by the store and cannot be written",
                collection=self.name,
                field=self.id_field,
            )
        unknown = [k for k in values if not self.has_field(k)]
        if unknown:
            raise ValidationFault(
                f"Unknown fields for {self.name!r}: {', '.join(unknown)}",
                collection=self.name,
                field=unknown[0],
            )


class Projection:
    """Ordered set of field names requested from a read.

    Validated against the schema when built, so call sites fail before any
    request goes out.
    """

    def __init__(self, schema: CollectionSchema, fields: Iterable[str]) -> None:
        ordered: List[str] = []
        for name in fields:
            if name == schema.id_field or name in ordered:
                continue
            ordered.append(name)

        unknown = [n for n in ordered if not schema.has_field(n)]
        if unknown:
            raise InvalidProjection(
                f"Fields not in {schema.name!r} schema: {', '.join(unknown)}",
                collection=schema.name,
                fields=unknown,
            )
        self.schema = schema
        self.fields: Tuple[str, ...] = tuple(ordered)

    @property
    def columns(self) -> Tuple[str, ...]:
        return (self.schema.id_field,) + self.fields

    def select_clause(self) -> str:
        return ",".join(self.columns)

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Projection):
            return NotImplemented
        return self.schema == other.schema and self.fields == other.fields

    def __hash__(self) -> int:
        return hash((self.schema.name, self.fields))

    def __repr__(self) -> str:
        return f"Projection({self.schema.name!r}, {list(self.fields)!r})"


@dataclass(frozen=True)
class Item:
    """One record of a collection: identifier plus projected fields."""

    id: ItemId
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __getitem__(self, name: str) -> Any:
        return self.fields[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def merged(self, values: Mapping[str, Any]) -> "Item":
        """Return a copy with ``values`` applied to fields already present."""
        patched = dict(self.fields)
        for key, value in values.items():
            if key in patched:
                patched[key] = value
        return Item(self.id, patched)

    def to_dict(self, id_field: str = "id") -> Dict[str, Any]:
        return {id_field: self.id, **self.fields}

    @classmethod
    def from_row(cls, row: Mapping[str, Any], schema: CollectionSchema, fields: Iterable[str]) -> "Item":
        return cls(row[schema.id_field], {name: row.get(name) for name in fields})


def load_schemas(path: Union[str, Path]) -> Dict[str, CollectionSchema]:
    """Load collection schemas from a JSON collections file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    schemas: Dict[str, CollectionSchema] = {}
    for entry in data.get("collections", []):
        schema = CollectionSchema.from_dict(entry)
        if schema.name in schemas:
            raise ValueError(f"Collection {schema.name!r} declared twice in {path}")
        schemas[schema.name] = schema
    logger.info(f"Loaded {len(schemas)} collection schema(s) from {path}")
    return schemas
