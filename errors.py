"""
Error taxonomy for the data layer

Every failure raised by descriptors, the clause builder, the repository and
the materializer derives from DataLayerError so callers can catch the whole
layer at once, or a single kind when they need to map it (e.g. to an HTTP
status).
"""

from typing import Optional

from utils.error_messages import enhance_error_message


class DataLayerError(Exception):
    """Base class for all data layer errors"""


class TypeMismatch(DataLayerError):
    """Value does not satisfy the Record capability, or is not an addressable record"""


class InvalidQueryParameter(DataLayerError):
    """Filter or sort key does not resolve to a known column"""

    def __init__(self, key: str, message: Optional[str] = None):
        self.key = key
        super().__init__(message or f"invalid query parameter: {key}")


class InvalidQueryValue(InvalidQueryParameter):
    """Filter value cannot be read as the type of its field"""

    def __init__(self, key: str, value: str):
        self.value = value
        super().__init__(key, f"invalid value for query parameter {key}: {value!r}")


class InvalidPagination(DataLayerError):
    """limit/offset present but not a usable integer"""

    def __init__(self, name: str, value: str):
        self.name = name
        self.value = value
        super().__init__(f"pagination error; {name} must be a non-negative integer, got {value!r}")


class StorageError(DataLayerError):
    """
    Driver failure while preparing or running a statement.

    The message carries the statement intent (e.g. "insert into users") and a
    readable description of the driver error. The driver exception itself is
    chained as __cause__ by the raising code.
    """

    stage = "running"

    def __init__(self, intent: str, error: Optional[BaseException] = None):
        self.intent = intent
        self.error = error
        detail = enhance_error_message(error) if error is not None else "unknown error"
        super().__init__(f"error {self.stage} {intent}: {detail}")


class PrepareError(StorageError):
    stage = "preparing"


class ExecuteError(StorageError):
    stage = "executing"


class ScanError(DataLayerError):
    """Row shape does not match the expected field slots"""


class RecordNotFound(ScanError):
    """
    Lookup returned no row.

    Subclasses ScanError so code written against the plain scan failure keeps
    working.
    """

    def __init__(self, table: str, record_id):
        self.table = table
        self.record_id = record_id
        super().__init__(f"no row in {table} with id {record_id}")
