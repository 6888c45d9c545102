"""
Record store for audit results.

RecordStore is the interface the executor queries. InMemoryAuditResultStore
implements it over a list of records loaded from JSON, and enforces the same
constraints as the production document store: equality filters on any
fields, inequality filters on at most one field, and that field must be the
first sort.
"""

import json
import logging
import operator
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Union

from models import (
    AuditResult,
    INEQUALITY_OPERATORS,
    OPERATORS,
    QueryFilter,
    QueryOptions,
    QuerySort,
)

logger = logging.getLogger(__name__)


class StoreQueryError(Exception):
    """Raised when a query is malformed or the store cannot serve it."""


class RecordStore(Protocol):
    async def get_all(self, options: QueryOptions) -> List[AuditResult]:
        ...


_COMPARATORS: Dict[str, Callable[[Any, Any], bool]] = {
    '==': operator.eq,
    '!=': operator.ne,
    '>': operator.gt,
    '>=': operator.ge,
    '<': operator.lt,
    '<=': operator.le,
}


def get_field(record: Any, field: str) -> Any:
    """Read a field from a record object or a plain dict."""
    if isinstance(record, dict):
        return record.get(field)
    return getattr(record, field, None)


def sort_records(records: Iterable[Any], sorts: List[QuerySort]) -> List[Any]:
    """
    Sort records by a list of sort directives.

    Missing (None) values sort last regardless of direction. Later
    directives break ties left by earlier ones.
    """
    result = list(records)
    # Stable sorts applied from the least significant directive up
    for sort in reversed(sorts):
        present = [r for r in result if get_field(r, sort.field) is not None]
        missing = [r for r in result if get_field(r, sort.field) is None]
        present.sort(
            key=lambda r: get_field(r, sort.field),
            reverse=sort.direction == 'desc',
        )
        result = present + missing
    return result


def check_query(options: QueryOptions) -> None:
    """
    Validate a query against the store's constraints.

    Raises:
        StoreQueryError: On unknown operators, inequality filters on more
            than one field, or an inequality field that is not sorted first.
    """
    inequality_fields = []
    for query_filter in options.filters:
        if query_filter.operator not in OPERATORS:
            raise StoreQueryError(f'Unsupported operator: {query_filter.operator}')
        if (query_filter.operator in INEQUALITY_OPERATORS
                and query_filter.field not in inequality_fields):
            inequality_fields.append(query_filter.field)

    if len(inequality_fields) > 1:
        raise StoreQueryError(
            f'Inequality filters on multiple fields: {", ".join(inequality_fields)}'
        )

    if inequality_fields and options.sorts and options.sorts[0].field != inequality_fields[0]:
        raise StoreQueryError(
            f'First sort must be on inequality field "{inequality_fields[0]}", '
            f'got "{options.sorts[0].field}"'
        )

    if options.limit is not None and options.limit <= 0:
        raise StoreQueryError(f'Limit must be positive, got {options.limit}')


def _matches(record: AuditResult, query_filter: QueryFilter) -> bool:
    value = get_field(record, query_filter.field)
    if query_filter.operator in INEQUALITY_OPERATORS:
        if value is None:
            return False
        try:
            return _COMPARATORS[query_filter.operator](value, query_filter.value)
        except TypeError:
            return False
    return _COMPARATORS[query_filter.operator](value, query_filter.value)


class InMemoryAuditResultStore:
    """
    Audit results held in memory.

    Example:
        store = InMemoryAuditResultStore.from_file(Path('audit-results.json'))
        results = await store.get_all(QueryOptions(
            filters=[QueryFilter('year', '==', 2023)],
            sorts=[QuerySort('nilai', 'desc')],
            limit=10,
        ))
    """

    def __init__(self, records: Optional[Iterable[Union[AuditResult, Dict[str, Any]]]] = None):
        self._records: List[AuditResult] = [
            r if isinstance(r, AuditResult) else AuditResult.from_dict(r)
            for r in records or []
        ]

    @classmethod
    def from_file(cls, path: Path) -> 'InMemoryAuditResultStore':
        """
        Load records from a JSON array or a JSON-lines file.

        Raises:
            FileNotFoundError: If the file does not exist
            StoreQueryError: If the file content is not valid record data
        """
        text = Path(path).read_text(encoding='utf-8')
        stripped = text.strip()
        try:
            if not stripped:
                data = []
            elif stripped.startswith('['):
                data = json.loads(stripped)
            else:
                data = [json.loads(line) for line in stripped.splitlines() if line.strip()]
        except json.JSONDecodeError as e:
            raise StoreQueryError(f'Invalid record data in {path}: {e}') from e

        if not all(isinstance(item, dict) for item in data):
            raise StoreQueryError(f'Invalid record data in {path}: expected objects')

        try:
            store = cls(data)
        except (TypeError, ValueError) as e:
            raise StoreQueryError(f'Invalid record data in {path}: {e}') from e

        logger.info("Loaded %d audit results from %s", len(data), path)
        return store

    @property
    def records(self) -> List[AuditResult]:
        return list(self._records)

    def add(self, record: Union[AuditResult, Dict[str, Any]]) -> None:
        if not isinstance(record, AuditResult):
            record = AuditResult.from_dict(record)
        self._records.append(record)

    async def get_all(self, options: Optional[QueryOptions] = None) -> List[AuditResult]:
        options = options or QueryOptions()
        check_query(options)

        results = [
            record for record in self._records
            if all(_matches(record, f) for f in options.filters)
        ]
        results = sort_records(results, options.sorts)
        if options.limit is not None:
            results = results[:options.limit]
        return results
