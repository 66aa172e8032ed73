"""
Row Materializer

Scans result rows into record instances. Field slots come from the record's
descriptor, in the same order as the SELECT list the repository issues.
"""

import logging
from typing import Any, AsyncIterable, List, Optional, Sequence

from errors import RecordNotFound, ScanError
from models import Record

from .descriptor import resolve

logger = logging.getLogger(__name__)

# (upper bound on expected rows, capacity hint)
_CAPACITY_BUCKETS = (
    (10, 10),
    (25, 20),
    (50, 35),
    (100, 75),
    (200, 150),
    (300, 250),
    (500, 400),
    (1000, 900),
    (2000, 1800),
    (5000, 2500),
)
MAX_CAPACITY = 5000


def initial_capacity(expected_rows: int) -> int:
    """Bucketed batch-size hint for reading expected_rows rows."""
    for upper, capacity in _CAPACITY_BUCKETS:
        if expected_rows <= upper:
            return capacity
    return MAX_CAPACITY


class Materializer:
    """Fills records from rows, one field slot per selected column."""

    def scan_one(self, record: Record, row: Optional[Sequence[Any]], record_id: Any = None) -> Record:
        """
        Assign row values to record's fields in descriptor order.

        Raises:
            RecordNotFound: row is None (the lookup matched nothing)
            ScanError: row width differs from the number of field slots
        """
        descriptor = resolve(record)
        if row is None:
            raise RecordNotFound(descriptor.table_name, record_id)

        slots = descriptor.slots()
        if len(row) != len(slots):
            raise ScanError(
                f"cannot scan {len(row)} columns into {len(slots)} fields of "
                f"{type(record).__name__}"
            )

        for slot, value in zip(slots, row):
            setattr(record, slot.name, value)
        return record

    async def scan_many(self, template: Record, rows: AsyncIterable[Sequence[Any]]) -> List[Record]:
        """
        Scan every row into a freshly allocated record of template's type.

        An error raised by the row source mid-iteration propagates unchanged;
        no partial collection is returned.
        """
        record_type = type(template)
        results = template.empty_collection()
        async for row in rows:
            results.append(self.scan_one(record_type.empty(), row))
        logger.debug(f"Scanned {len(results)} {record_type.__name__} rows")
        return results
