"""
Tests for query execution and result formatting in executor.py
"""

from unittest.mock import AsyncMock

import pytest
from departments import DepartmentDirectory
from executor import (
    QueryExecutor,
    format_empty_results,
    format_error,
    format_finding,
    format_query_context,
    format_results,
    format_summary_header,
    order_sorts_for_inequality,
    resolve_limit,
)
from matcher import QueryMatcher, QueryPattern
from models import AuditResult, QueryFilter, QuerySort
from patterns import ALL_PATTERNS, get_pattern_by_id
from store import InMemoryAuditResultStore, StoreQueryError


RECORDS = [
    AuditResult(audit_result_id='a1', year=2023, department='IT', project_name='Alpha',
                code='F1', bobot=3, kadar=5, nilai=15),
    AuditResult(audit_result_id='a2', year=2023, department='Departemen IT',
                project_name='Beta', code='F2', bobot=4, kadar=5, nilai=20),
    AuditResult(audit_result_id='a3', year=2022, department='IT', project_name='Alpha',
                code='', bobot=2, kadar=2, nilai=4),
    AuditResult(audit_result_id='a4', year=2023, department='Finance', project_name='Gamma',
                code='F3', bobot=2, kadar=4, nilai=8),
    AuditResult(audit_result_id='a5', year=2023, department='Teknologi Informasi',
                project_name='Delta', code='F4', bobot=2, kadar=5, nilai=10),
]


@pytest.fixture
def store():
    return InMemoryAuditResultStore(RECORDS)


@pytest.fixture
def executor(store):
    return QueryExecutor(store, DepartmentDirectory.from_records(store.records))


def ids(records):
    return [r.audit_result_id for r in records]


def empty_lookup():
    lookup = AsyncMock()
    lookup.get_by_category.return_value = []
    lookup.search_by_name.return_value = []
    lookup.find_or_create.return_value = None
    return lookup


class TestExecute:
    """Tests for QueryExecutor.execute"""

    @pytest.mark.asyncio
    async def test_single_query(self, executor):
        result = await executor.execute(get_pattern_by_id('temporal-year-from'), {'year': 2023})

        assert ids(result.findings) == ['a2', 'a1', 'a5', 'a4']
        assert result.type == 'simple_query'
        assert result.metadata.pattern_matched == 'temporal-year-from'
        assert result.metadata.results_count == 4
        assert result.metadata.departments == []
        assert 'Found **4** audit results in year 2023' in result.answer

    @pytest.mark.asyncio
    async def test_department_fans_out_over_spellings(self, executor):
        """'It' expands to every spelling in the IT category"""
        result = await executor.execute(
            get_pattern_by_id('composite-dept-year-from'), {'department': 'It', 'year': 2023}
        )

        assert ids(result.findings) == ['a2', 'a1', 'a5']
        assert result.metadata.departments == ['IT', 'Departemen IT', 'Teknologi Informasi']
        assert result.metadata.filters_applied == [QueryFilter('year', '==', 2023)]
        assert result.metadata.sorts_applied == [QuerySort('nilai', 'desc')]

    @pytest.mark.asyncio
    async def test_fan_out_queries_each_spelling(self):
        store = AsyncMock()
        store.get_all.return_value = []
        directory = DepartmentDirectory.from_records(RECORDS)
        executor = QueryExecutor(store, directory)

        await executor.execute(get_pattern_by_id('department-findings'), {'department': 'It'})

        queried = [call.args[0].filters for call in store.get_all.await_args_list]
        assert queried == [
            [QueryFilter('department', '==', 'IT')],
            [QueryFilter('department', '==', 'Departemen IT')],
            [QueryFilter('department', '==', 'Teknologi Informasi')],
        ]

    @pytest.mark.asyncio
    async def test_fan_out_result_limited(self, store):
        executor = QueryExecutor(store, DepartmentDirectory.from_records(RECORDS), default_limit=2)

        result = await executor.execute(
            get_pattern_by_id('department-findings'), {'department': 'It'}
        )

        # Merged across spellings, then sorted by year desc
        assert ids(result.findings) == ['a1', 'a2']

    @pytest.mark.asyncio
    async def test_critical_department(self, executor):
        result = await executor.execute(
            get_pattern_by_id('composite-critical-dept'), {'department': 'It'}
        )

        assert ids(result.findings) == ['a2', 'a1']
        assert all(f.nilai >= 15 for f in result.findings)

    @pytest.mark.asyncio
    async def test_top_n_limit(self, executor):
        result = await executor.execute(get_pattern_by_id('risk-top-n'), {'limit': 2})

        assert ids(result.findings) == ['a2', 'a1']

    @pytest.mark.asyncio
    async def test_top_n_sends_limit_to_store(self):
        """'top 5 findings' asks the store for 5 by nilai desc and returns at most 5"""
        records = [AuditResult(audit_result_id=f'r{i}', nilai=20 - i) for i in range(8)]
        store = AsyncMock()
        store.get_all.return_value = records
        match = QueryMatcher(ALL_PATTERNS).match("top 5 findings")

        result = await QueryExecutor(store).execute(match.pattern, match.params)

        options = store.get_all.await_args.args[0]
        assert options.limit == 5
        assert options.sorts == [QuerySort('nilai', 'desc')]
        assert options.filters == []
        assert ids(result.findings) == ['r0', 'r1', 'r2', 'r3', 'r4']

    @pytest.mark.asyncio
    async def test_inequality_field_sorted_first(self):
        """Sorts are reordered before they reach the store"""
        store = AsyncMock()
        store.get_all.return_value = []
        executor = QueryExecutor(store)
        pattern = QueryPattern(
            id='custom', name='Custom', priority=1,
            regex=get_pattern_by_id('temporal-year-from').regex,
            filter_builder=lambda p: [QueryFilter('nilai', '>=', 5)],
            sort_builder=lambda p: [QuerySort('year', 'desc')],
        )

        await executor.execute(pattern, {})

        options = store.get_all.await_args.args[0]
        assert options.sorts == [QuerySort('nilai', 'desc'), QuerySort('year', 'desc')]
        assert options.limit == 50

    @pytest.mark.asyncio
    async def test_unknown_department_skips_store(self):
        store = AsyncMock()
        executor = QueryExecutor(store, empty_lookup())

        result = await executor.execute(
            get_pattern_by_id('department-findings'), {'department': 'It'}
        )

        store.get_all.assert_not_awaited()
        assert result.findings == []
        assert result.metadata.results_count == 0
        assert result.answer.startswith('# No Results Found')

    @pytest.mark.asyncio
    async def test_lookup_order(self):
        """Category, then name search, then find-or-create"""
        lookup = empty_lookup()
        store = AsyncMock()
        executor = QueryExecutor(store, lookup)

        await executor.execute(get_pattern_by_id('department-findings'), {'department': 'Hr'})

        lookup.get_by_category.assert_awaited_once_with('Hr')
        lookup.search_by_name.assert_awaited_once_with('Hr')
        lookup.find_or_create.assert_awaited_once_with('Hr')

    @pytest.mark.asyncio
    async def test_lookup_failure_uses_literal_department(self):
        lookup = empty_lookup()
        lookup.get_by_category.side_effect = RuntimeError('directory offline')
        store = AsyncMock()
        store.get_all.return_value = []
        executor = QueryExecutor(store, lookup)

        result = await executor.execute(
            get_pattern_by_id('department-findings'), {'department': 'It'}
        )

        options = store.get_all.await_args.args[0]
        assert options.filters == [QueryFilter('department', '==', 'It')]
        assert result.metadata.departments == ['It']

    @pytest.mark.asyncio
    async def test_without_lookup_uses_literal_department(self, store):
        executor = QueryExecutor(store)

        result = await executor.execute(
            get_pattern_by_id('department-findings'), {'department': 'IT'}
        )

        assert ids(result.findings) == ['a1', 'a3']

    @pytest.mark.asyncio
    async def test_store_error_becomes_error_result(self):
        store = AsyncMock()
        store.get_all.side_effect = StoreQueryError('index missing')
        executor = QueryExecutor(store)

        result = await executor.execute(get_pattern_by_id('temporal-year-from'), {'year': 2023})

        assert result.findings == []
        assert result.metadata.results_count == 0
        assert result.metadata.filters_applied == [QueryFilter('year', '==', 2023)]
        assert result.answer.startswith('# Query Error')
        assert '**Error:** index missing' in result.answer
        assert result.metadata.error == 'index missing'

    @pytest.mark.asyncio
    async def test_empty_results(self, executor):
        result = await executor.execute(get_pattern_by_id('temporal-year-from'), {'year': 1999})

        assert result.findings == []
        assert 'No audit results found in year 1999.' in result.answer


class TestResolveLimit:
    """Tests for resolve_limit"""

    @pytest.mark.parametrize("value,expected", [
        (5, 5),
        (2.7, 2),
        ('7', 7),
        (1, 1),
        (0, 50),
        (-3, 50),
        (0.5, 50),
        (float('inf'), 50),
        (float('nan'), 50),
        ('abc', 50),
        (None, 50),
        (True, 50),
    ])
    def test_resolve_limit(self, value, expected):
        assert resolve_limit(value) == expected

    def test_custom_default(self):
        assert resolve_limit(None, 10) == 10


class TestOrderSortsForInequality:
    """Tests for order_sorts_for_inequality"""

    def test_no_inequality_unchanged(self):
        sorts = [QuerySort('year', 'desc')]
        assert order_sorts_for_inequality([QueryFilter('year', '==', 2023)], sorts) == sorts

    def test_already_first_unchanged(self):
        sorts = [QuerySort('nilai', 'asc'), QuerySort('year', 'desc')]
        assert order_sorts_for_inequality([QueryFilter('nilai', '>=', 5)], sorts) == sorts

    def test_existing_sort_moved_to_front(self):
        """Direction of the existing sort is kept"""
        result = order_sorts_for_inequality(
            [QueryFilter('nilai', '<', 10)],
            [QuerySort('year', 'desc'), QuerySort('nilai', 'asc')],
        )
        assert result == [QuerySort('nilai', 'asc'), QuerySort('year', 'desc')]

    def test_missing_sort_inserted_descending(self):
        result = order_sorts_for_inequality(
            [QueryFilter('code', '!=', ''), QueryFilter('nilai', '>=', 15)],
            [QuerySort('year', 'desc')],
        )
        assert result == [QuerySort('nilai', 'desc'), QuerySort('year', 'desc')]


class TestFormatting:
    """Tests for the markdown report"""

    def test_query_context(self):
        context = format_query_context({'year': 2023, 'department': 'It'})
        assert context == ' in year 2023, for It department'

    def test_query_context_empty(self):
        assert format_query_context({}) == ''

    def test_summary_header(self):
        header = format_summary_header(RECORDS[:2], {})

        assert 'Found **2** audit results' in header
        assert '- Total Risk Value (Nilai): 35' in header
        assert '- Average Risk Value: 17.50' in header

    def test_summary_header_single(self):
        assert 'Found **1** audit result\n' in format_summary_header(RECORDS[:1], {})

    def test_finding_without_code(self):
        text = format_finding(RECORDS[2], 3)

        assert text.startswith('### 3. Alpha (2022)')
        assert '**Code:**' not in text
        assert '- **Risk Value (Nilai):** 4 (Bobot: 2, Kadar: 2)' in text

    def test_results_footer(self):
        text = format_results(RECORDS[:1], {}, 12.5)
        assert text.endswith('*Query executed in 12.5 ms*')

    def test_results_empty_delegates(self):
        assert format_results([], {'year': 2020}) == format_empty_results({'year': 2020})

    def test_error_without_message(self):
        assert '**Error:** Unknown error' in format_error(RuntimeError())
