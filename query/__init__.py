"""
Generic record query layer

Descriptors derive table/column metadata from record declarations, the
builder turns query parameters into parameterized SQL, and the materializer
scans rows back into records.
"""

from .descriptor import Descriptor, FieldDef, resolve
from .builder import QueryBuilder, QueryPlan, bind_value, coerce_value
from .materializer import Materializer, initial_capacity

__all__ = [
    'Descriptor',
    'FieldDef',
    'resolve',
    'QueryBuilder',
    'QueryPlan',
    'bind_value',
    'coerce_value',
    'Materializer',
    'initial_capacity',
]
