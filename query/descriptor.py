"""
Record Descriptor

Derives the storage shape of a Record type from its pydantic field
declarations: table name, ordered columns, read-only flags and the mapping
from external (API-facing) names to columns.

The descriptor is the single source of column order. SELECT lists, INSERT and
UPDATE column lists and the materializer's field slots are all taken from the
same FieldDef tuple, so they cannot drift apart.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, List, Tuple

from errors import TypeMismatch
from models import Record

# Columns always owned by storage, whatever the field declaration says
READ_ONLY_COLUMNS = frozenset({"id", "created_at"})


@dataclass(frozen=True)
class FieldDef:
    """One record field and the column it is stored in."""
    name: str  # attribute name on the record
    external_name: str  # name used in query parameters / API payloads
    column: str
    read_only: bool = False
    annotation: Any = field(default=None, compare=False)  # declared Python type


@dataclass(frozen=True)
class Descriptor:
    """Static table/column metadata for one record type."""
    table_name: str
    fields: Tuple[FieldDef, ...]
    id_column: str = "id"

    def slots(self, exclude_read_only: bool = False) -> List[FieldDef]:
        if exclude_read_only:
            return [f for f in self.fields if not f.read_only]
        return list(self.fields)

    def columns(self, exclude_read_only: bool = False) -> List[str]:
        return [f.column for f in self.slots(exclude_read_only)]

    @property
    def external_to_column(self) -> Dict[str, str]:
        return {f.external_name: f.column for f in self.fields}

    @property
    def external_to_annotation(self) -> Dict[str, Any]:
        return {f.external_name: f.annotation for f in self.fields}

    def values(self, record: Record) -> List[Any]:
        """Field values of record for the writable columns, in column order."""
        return [getattr(record, f.name) for f in self.slots(exclude_read_only=True)]


def _field_def(name: str, info) -> FieldDef:
    extra = info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}
    column = extra.get("column", name)
    read_only = bool(extra.get("read_only")) or column in READ_ONLY_COLUMNS
    return FieldDef(
        name=name,
        external_name=info.alias or name,
        column=column,
        read_only=read_only,
        annotation=info.annotation,
    )


@lru_cache(maxsize=None)
def _resolve_type(record_type: type) -> Descriptor:
    if not record_type.__tablename__:
        raise TypeMismatch(f"{record_type.__name__} does not declare a table name")

    fields = tuple(_field_def(name, info) for name, info in record_type.model_fields.items())

    id_column = "id"
    for f in fields:
        if f.name == record_type.__id_field__:
            id_column = f.column
            break
    else:
        raise TypeMismatch(f"{record_type.__name__} has no identifier field '{record_type.__id_field__}'")

    return Descriptor(table_name=record_type.__tablename__, fields=fields, id_column=id_column)


def resolve(record_or_type: Any) -> Descriptor:
    """
    Get the descriptor for a record instance or record type.

    Derivation is pure, so the result is memoized per type.

    Raises:
        TypeMismatch: value is not a Record (or Record subclass), or the type
            declares no table name / identifier field
    """
    record_type = record_or_type if isinstance(record_or_type, type) else type(record_or_type)
    if not issubclass(record_type, Record):
        raise TypeMismatch(f"expected record, got {record_type.__name__}")
    return _resolve_type(record_type)
