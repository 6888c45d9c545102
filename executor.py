"""
Executes matched query patterns against the record store and formats the
results as a readable report.
"""

import logging
import math
import time
from typing import Any, List, Optional

from departments import DepartmentLookup
from matcher import ExtractedParams, QueryPattern
from models import (
    AuditResult,
    QueryFilter,
    QueryMetadata,
    QueryOptions,
    QueryResult,
    QuerySort,
)
from store import RecordStore, sort_records

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


def order_sorts_for_inequality(
    filters: List[QueryFilter],
    sorts: List[QuerySort],
) -> List[QuerySort]:
    """
    Reorder sorts so the first one is on the inequality-filtered field.

    The store rejects queries with an inequality filter (>, >=, <, <=) unless
    results are ordered by that field first. An existing sort on the field is
    moved to the front; otherwise a descending sort on it is inserted.

    Example:
        >>> order_sorts_for_inequality(
        ...     [QueryFilter('nilai', '>=', 15)], [QuerySort('year', 'desc')])
        [QuerySort(field='nilai', direction='desc'), QuerySort(field='year', direction='desc')]
    """
    inequality_filter = next((f for f in filters if f.is_inequality), None)
    if inequality_filter is None:
        return list(sorts)

    if sorts and sorts[0].field == inequality_filter.field:
        return list(sorts)

    field = inequality_filter.field
    inequality_sort = next((s for s in sorts if s.field == field), None)
    other_sorts = [s for s in sorts if s.field != field]

    if inequality_sort is None:
        inequality_sort = QuerySort(field, 'desc')
    return [inequality_sort] + other_sorts


def resolve_limit(value: Any, default: int = DEFAULT_LIMIT) -> int:
    """Use value as the result limit if it is a positive finite number."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number) or number < 1:
        return default
    return int(math.floor(number))


class QueryExecutor:
    """
    Runs a (pattern, params) pair against the record store.

    Department filters are expanded through the department lookup into one
    query per literal department spelling, and the partial results are
    merged, re-sorted and limited here. Store failures never propagate;
    they become zero-result responses carrying the error text.

    Example:
        executor = QueryExecutor(store, directory)
        result = await executor.execute(pattern, {'year': 2023})
        print(result.answer)
    """

    def __init__(
        self,
        store: RecordStore,
        departments: Optional[DepartmentLookup] = None,
        default_limit: int = DEFAULT_LIMIT,
    ):
        self.store = store
        self.departments = departments
        self.default_limit = default_limit

    async def execute(self, pattern: QueryPattern, params: ExtractedParams) -> QueryResult:
        start_time = time.perf_counter()
        filters: List[QueryFilter] = []
        sorts: List[QuerySort] = []

        try:
            filters = pattern.filter_builder(params)
            sorts = pattern.sort_builder(params)

            department_filter = next(
                (f for f in filters if f.field == 'department' and f.value), None
            )
            department_names: List[str] = []
            if department_filter is not None:
                department_names = await self._resolve_departments(str(department_filter.value))
                if not department_names:
                    logger.info(
                        "No departments match %r, skipping store query", department_filter.value
                    )
                    return QueryResult(
                        answer=format_empty_results(params),
                        findings=[],
                        metadata=QueryMetadata(
                            pattern_matched=pattern.id,
                            execution_time_ms=_elapsed_ms(start_time),
                            filters_applied=filters,
                            sorts_applied=sorts,
                        ),
                    )
                filters = [f for f in filters if f.field != 'department']

            ordered_sorts = order_sorts_for_inequality(filters, sorts)
            limit = resolve_limit(params.get('limit'), self.default_limit)

            if department_names:
                findings = []
                for name in department_names:
                    options = QueryOptions(
                        filters=filters + [QueryFilter('department', '==', name)],
                        sorts=ordered_sorts,
                        limit=limit,
                    )
                    findings.extend(await self.store.get_all(options))
                findings = sort_records(findings, ordered_sorts)[:limit]
            else:
                options = QueryOptions(filters=filters, sorts=ordered_sorts, limit=limit)
                findings = list(await self.store.get_all(options))[:limit]

            execution_time_ms = _elapsed_ms(start_time)
            return QueryResult(
                answer=format_results(findings, params, execution_time_ms),
                findings=findings,
                metadata=QueryMetadata(
                    pattern_matched=pattern.id,
                    execution_time_ms=execution_time_ms,
                    results_count=len(findings),
                    filters_applied=filters,
                    sorts_applied=ordered_sorts,
                    departments=department_names,
                ),
            )

        except Exception as e:
            logger.exception("Query for pattern %s failed", pattern.id)
            return QueryResult(
                answer=format_error(e),
                findings=[],
                metadata=QueryMetadata(
                    pattern_matched=pattern.id,
                    execution_time_ms=_elapsed_ms(start_time),
                    filters_applied=filters,
                    sorts_applied=sorts,
                    error=str(e) or type(e).__name__,
                ),
            )

    async def _resolve_departments(self, value: str) -> List[str]:
        """
        Literal department spellings for a department filter value.

        Tries category, then name search, then find-or-create. Falls back to
        the value itself when there is no lookup or the lookup fails.
        """
        if self.departments is None:
            return [value]

        try:
            departments = await self.departments.get_by_category(value)
            if not departments:
                departments = await self.departments.search_by_name(value)
            if not departments:
                department = await self.departments.find_or_create(value)
                departments = [department] if department else []
        except Exception:
            logger.warning("Department lookup failed for %r, using literal value", value,
                           exc_info=True)
            return [value]

        names = []
        for department in departments:
            for name in department.original_names:
                if name not in names:
                    names.append(name)
        return names


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 2)


def _format_number(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_query_context(params: ExtractedParams) -> str:
    """Describe the query parameters, e.g. ' in year 2023, for It department'."""
    contexts = []
    if params.get('year'):
        contexts.append(f"in year {params['year']}")
    if params.get('department'):
        contexts.append(f"for {params['department']} department")
    if params.get('project_name'):
        contexts.append(f'for project "{params["project_name"]}"')
    if params.get('sh'):
        contexts.append(f"for subholding {params['sh']}")
    if params.get('min_nilai'):
        contexts.append(f"with nilai >= {params['min_nilai']}")
    return f" {', '.join(contexts)}" if contexts else ''


def format_summary_header(findings: List[AuditResult], params: ExtractedParams) -> str:
    count = len(findings)
    total_nilai = sum(f.nilai or 0 for f in findings)
    avg_nilai = f'{total_nilai / count:.2f}' if count else '0'
    plural = '' if count == 1 else 's'

    lines = [
        '# Query Results',
        '',
        f'Found **{count}** audit result{plural}{format_query_context(params)}',
        '',
        '**Summary Statistics:**',
        f'- Total Results: {count}',
        f'- Total Risk Value (Nilai): {_format_number(total_nilai)}',
        f'- Average Risk Value: {avg_nilai}',
    ]
    return '\n'.join(lines)


def format_finding(finding: AuditResult, index: int) -> str:
    lines = [
        f'### {index}. {finding.project_name} ({finding.year})',
        f'- **Department:** {finding.department}',
        f'- **Risk Area:** {finding.risk_area}',
        f'- **Risk Value (Nilai):** {_format_number(finding.nilai)} '
        f'(Bobot: {_format_number(finding.bobot)}, Kadar: {_format_number(finding.kadar)})',
    ]
    if finding.code:
        lines.append(f'- **Code:** {finding.code}')
    lines.append(f'- **Description:** {finding.descriptions}')
    if finding.sh:
        lines.append(f'- **Subholding:** {finding.sh}')
    return '\n'.join(lines)


def format_results(
    findings: List[AuditResult],
    params: ExtractedParams,
    execution_time_ms: float = 0,
) -> str:
    if not findings:
        return format_empty_results(params)

    lines = [format_summary_header(findings, params), '', '**Results:**', '']
    for index, finding in enumerate(findings, start=1):
        lines.append(format_finding(finding, index))
        lines.append('')
    lines.append('---')
    lines.append(f'*Query executed in {execution_time_ms} ms*')
    return '\n'.join(lines)


def format_empty_results(params: ExtractedParams) -> str:
    lines = [
        '# No Results Found',
        '',
        f'No audit results found{format_query_context(params)}.',
        '',
        '**Suggestions:**',
        '- Try adjusting your search criteria',
        '- Check if the year, department, or project name is correct',
        '- Try a broader search without specific filters',
    ]
    return '\n'.join(lines)


def format_error(error: BaseException) -> str:
    lines = [
        '# Query Error',
        '',
        'An error occurred while executing your query.',
        '',
        f'**Error:** {str(error) or "Unknown error"}',
        '',
        '**Suggestions:**',
        '- Try rephrasing your query',
        '- Check your network connection',
        '- Contact support if the problem persists',
    ]
    return '\n'.join(lines)
