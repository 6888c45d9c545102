"""
Data structures shared by the matcher, executor and record store.
Filters and sorts are frozen so builders produce structurally comparable output.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


EQUALITY_OPERATORS = ('==', '!=')
INEQUALITY_OPERATORS = ('>', '>=', '<', '<=')
OPERATORS = EQUALITY_OPERATORS + INEQUALITY_OPERATORS

SORT_DIRECTIONS = ('asc', 'desc')

# Store documents use camelCase keys; records use snake_case
_CAMEL_TO_SNAKE = {
    'auditResultId': 'audit_result_id',
    'projectName': 'project_name',
    'projectId': 'project_id',
    'riskArea': 'risk_area',
}


@dataclass(frozen=True)
class QueryFilter:
    """A single (field, operator, value) predicate."""
    field: str
    operator: str
    value: Any

    @property
    def is_inequality(self) -> bool:
        return self.operator in INEQUALITY_OPERATORS

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class QuerySort:
    field: str
    direction: str = 'asc'

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QueryOptions:
    """Options passed to RecordStore.get_all()."""
    filters: List[QueryFilter] = field(default_factory=list)
    sorts: List[QuerySort] = field(default_factory=list)
    limit: Optional[int] = None


@dataclass
class AuditResult:
    """
    An audit finding as stored in the audit-results collection.

    nilai is the risk score (bobot x kadar). An empty code marks a
    non-finding.
    """
    audit_result_id: str = ''
    year: Optional[int] = None
    sh: str = ''
    project_name: str = ''
    project_id: Optional[str] = None
    department: str = ''
    risk_area: str = ''
    descriptions: str = ''
    code: str = ''
    bobot: float = 0
    kadar: float = 0
    nilai: float = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditResult':
        """
        Create an AuditResult from a store document.

        Accepts snake_case or camelCase keys and ignores unknown keys
        (timestamps, ids). nilai is derived from bobot and kadar when absent.
        """
        known = cls.__dataclass_fields__
        values = {}
        for key, value in data.items():
            key = _CAMEL_TO_SNAKE.get(key, key)
            if key in known:
                values[key] = value

        if values.get('year') is not None:
            try:
                values['year'] = int(values['year'])
            except (TypeError, ValueError):
                pass

        # Raises ValueError for scores that are not numeric
        for key in ('bobot', 'kadar', 'nilai'):
            if values.get(key) is not None:
                values[key] = float(values[key])

        if 'nilai' not in values and 'bobot' in values and 'kadar' in values:
            values['nilai'] = values['bobot'] * values['kadar']

        return cls(**values)


@dataclass
class QueryMetadata:
    pattern_matched: str
    execution_time_ms: float = 0
    results_count: int = 0
    filters_applied: List[QueryFilter] = field(default_factory=list)
    sorts_applied: List[QuerySort] = field(default_factory=list)
    departments: List[str] = field(default_factory=list)
    query_type: str = 'simple_query'
    # Set when the store query failed; such results are never cached
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'query_type': self.query_type,
            'pattern_matched': self.pattern_matched,
            'execution_time_ms': self.execution_time_ms,
            'results_count': self.results_count,
            'filters_applied': [f.to_dict() for f in self.filters_applied],
            'sorts_applied': [s.to_dict() for s in self.sorts_applied],
            'departments': list(self.departments),
            'error': self.error,
        }


@dataclass
class QueryResult:
    """Response returned by QueryExecutor.execute()."""
    answer: str
    findings: List[AuditResult]
    metadata: QueryMetadata
    type: str = 'simple_query'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'answer': self.answer,
            'findings': [f.to_dict() for f in self.findings],
            'metadata': self.metadata.to_dict(),
        }
