"""
Record types persisted by the data layer
Using Pydantic for declaration and validation

Every persisted type subclasses Record and declares its columns with
db_column(). The declaration order of the fields is the column order used in
SELECT lists and by the materializer, so declare fields in the order you want
them read.
"""

from datetime import datetime
from typing import Any, ClassVar, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from errors import TypeMismatch


def db_column(column: str, *, alias: Optional[str] = None, read_only: bool = False, **kwargs) -> Any:
    """
    Declare a record field backed by a storage column.

    Args:
        column: Column name in the record's table
        alias: External (API-facing) name; defaults to the attribute name
        read_only: Column is owned by storage and never written
        **kwargs: Passed through to pydantic.Field (default, max_length, ...)
    """
    extra = {"column": column}
    if read_only:
        extra["read_only"] = True
    return Field(alias=alias, json_schema_extra=extra, **kwargs)


class Record(BaseModel):
    """
    Base class for anything persisted through the generic repository.

    Subclasses set __tablename__ and declare columns with db_column().
    """
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    __tablename__: ClassVar[str] = ""
    __id_field__: ClassVar[str] = "id"

    def get_id(self) -> Optional[int]:
        return getattr(self, self.__id_field__, None)

    @classmethod
    def empty(cls):
        """Zero-value instance, built without validation, ready to be scanned into"""
        return cls.model_construct()

    @classmethod
    def empty_collection(cls) -> List["Record"]:
        return []


def validate_record(value: Any) -> Record:
    """
    Validate a record against its declared field rules.

    Raises TypeMismatch if value is not a Record, and pydantic's
    ValidationError if a field breaks its rules. Returns a validated copy.
    """
    if not isinstance(value, Record):
        raise TypeMismatch(f"expected record, got {type(value).__name__}")
    return type(value).model_validate(value.model_dump())


# ============================================================================
# Records
# ============================================================================

class User(Record):
    __tablename__ = "users"

    id: Optional[int] = db_column("id", read_only=True, default=None)
    email: EmailStr = db_column("email")
    password: str = db_column("password", min_length=6, max_length=120)
    created_at: Optional[datetime] = db_column("created_at", alias="createdAt", read_only=True, default=None)


class Event(Record):
    __tablename__ = "events"

    id: Optional[int] = db_column("id", read_only=True, default=None)
    user_id: Optional[int] = db_column("user_id", alias="userId", default=None)
    name: str = db_column("name", max_length=100)
    description: str = db_column("description", max_length=500)
    start_date: datetime = db_column("start_date", alias="startDate")
    created_at: Optional[datetime] = db_column("created_at", alias="createdAt", read_only=True, default=None)
    max_attendees: Optional[int] = db_column("max_attendees", alias="maxAttendees", default=None)
