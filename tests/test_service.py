"""
Tests for the query service in service.py
"""

import re
from unittest.mock import AsyncMock, Mock

import pytest
from config import QueryConfig
from matcher import PatternValidationError, QueryPattern
from models import AuditResult, QueryFilter, QuerySort
from service import QueryMetrics, QueryService


RECORDS = [
    AuditResult(audit_result_id='a1', year=2023, department='IT', nilai=15, code='F1'),
    AuditResult(audit_result_id='a2', year=2022, department='HR', nilai=6, code=''),
]


def ids(records):
    return [r.audit_result_id for r in records]


class FakeClock:
    """Monotonic clock advanced by hand (or by tick on every read)."""

    def __init__(self, tick=0.0):
        self.now = 100.0
        self.tick = tick

    def __call__(self):
        self.now += self.tick
        return self.now


@pytest.fixture
def store():
    store = AsyncMock()
    store.get_all.return_value = list(RECORDS)
    return store


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(store, clock):
    return QueryService(store, clock=clock)


def custom_pattern(pattern_id='custom-risk-area', regex=r'risk area findings'):
    return QueryPattern(
        id=pattern_id,
        name='Custom - Risk Area',
        priority=40,
        regex=re.compile(regex, re.IGNORECASE),
        filter_builder=lambda p: [QueryFilter('risk_area', '!=', '')],
        sort_builder=lambda p: [QuerySort('year', 'desc')],
    )


class TestProcessQuery:
    """Tests for process_query"""

    @pytest.mark.asyncio
    async def test_matched_query(self, service):
        result = await service.process_query("findings from 2023")

        assert result is not None
        assert result.metadata.pattern_matched == 'temporal-year-from'
        assert result.metadata.results_count == 2
        assert service.metrics.matched_queries == 1
        assert service.metrics.cache_misses == 1

    @pytest.mark.asyncio
    async def test_unmatched_query_falls_back(self, service, store):
        assert await service.process_query("what is the weather") is None

        store.get_all.assert_not_awaited()
        assert service.metrics.fallback_queries == 1
        assert service.metrics.total_queries == 1

    @pytest.mark.asyncio
    async def test_disabled(self, store):
        service = QueryService(store, config=QueryConfig(enabled=False))

        assert await service.process_query("findings from 2023") is None
        assert service.metrics.fallback_queries == 1

    @pytest.mark.asyncio
    async def test_unexpected_error_falls_back(self, service):
        service.matcher = Mock()
        service.matcher.match.side_effect = RuntimeError('broken')

        assert await service.process_query("findings from 2023") is None
        assert service.metrics.fallback_queries == 1

    @pytest.mark.asyncio
    async def test_execution_time_from_clock(self, store):
        service = QueryService(store, clock=FakeClock(tick=0.01))

        result = await service.process_query("findings from 2023")

        assert result.metadata.execution_time_ms == 10.0

    @pytest.mark.asyncio
    async def test_slow_query_logged(self, store, caplog):
        service = QueryService(store, clock=FakeClock(tick=1.0))

        await service.process_query("findings from 2023")

        assert any('took' in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_monitoring_disabled(self, store):
        service = QueryService(store, config=QueryConfig(monitoring=False))

        await service.process_query("findings from 2023")
        await service.process_query("no match here")

        assert service.metrics == QueryMetrics()


class TestCache:
    """Tests for the result cache"""

    @pytest.mark.asyncio
    async def test_cache_hit_ignores_case_and_whitespace(self, service, store):
        first = await service.process_query("Findings from 2023")
        second = await service.process_query("  findings FROM 2023 ")

        assert store.get_all.await_count == 1
        assert second is not first
        assert second.findings == first.findings
        assert service.metrics.cache_hits == 1
        assert service.get_cache_stats()['size'] == 1

    @pytest.mark.asyncio
    async def test_cache_entry_expires(self, service, store, clock):
        service.set_cache_ttl(60)
        await service.process_query("findings from 2023")

        clock.now += 61
        await service.process_query("findings from 2023")

        assert store.get_all.await_count == 2

    @pytest.mark.asyncio
    async def test_cache_disabled(self, service, store):
        service.set_cache_enabled(False)

        await service.process_query("findings from 2023")
        await service.process_query("findings from 2023")

        assert store.get_all.await_count == 2
        assert service.get_cache_stats() == {'size': 0, 'enabled': False, 'ttl': 300.0}

    @pytest.mark.asyncio
    async def test_clear_cache(self, service):
        await service.process_query("findings from 2023")
        service.clear_cache()
        assert service.get_cache_stats()['size'] == 0

    @pytest.mark.asyncio
    async def test_failed_query_not_cached(self, service, store):
        """A retry after a store failure reaches the store again"""
        store.get_all.side_effect = [RuntimeError('store unavailable'), list(RECORDS)]

        first = await service.process_query("findings from 2023")
        second = await service.process_query("findings from 2023")

        assert first.answer.startswith('# Query Error')
        assert first.metadata.error == 'store unavailable'
        assert second.metadata.error is None
        assert ids(second.findings) == ['a1', 'a2']
        assert store.get_all.await_count == 2

    @pytest.mark.asyncio
    async def test_cache_hit_findings_are_a_copy(self, service):
        first = await service.process_query("findings from 2023")
        second = await service.process_query("findings from 2023")

        second.findings.clear()
        third = await service.process_query("findings from 2023")

        assert len(third.findings) == len(first.findings) == 2


class TestPatternManagement:
    """Tests for runtime pattern management"""

    @pytest.mark.asyncio
    async def test_add_custom_pattern(self, service):
        service.add_custom_pattern(custom_pattern())

        result = await service.process_query("risk area findings")

        assert result.metadata.pattern_matched == 'custom-risk-area'
        assert service.get_pattern_by_id('custom-risk-area') is not None

    @pytest.mark.asyncio
    async def test_add_pattern_clears_cache(self, service):
        await service.process_query("findings from 2023")
        service.add_custom_pattern(custom_pattern())
        assert service.get_cache_stats()['size'] == 0

    def test_add_conflicting_pattern(self, service):
        existing = service.get_pattern_by_id('risk-top-n')

        with pytest.raises(PatternValidationError):
            service.add_custom_pattern(custom_pattern('copy', existing.regex.pattern))

    def test_remove_pattern(self, service):
        count = len(service.get_available_patterns())

        assert service.remove_pattern('risk-top-n')
        assert not service.remove_pattern('risk-top-n')
        assert len(service.get_available_patterns()) == count - 1

    def test_validate_pattern(self, service):
        assert service.validate_pattern(custom_pattern()).valid

    def test_match_query_does_not_execute(self, service, store):
        result = service.match_query("top 3 findings")

        assert result.params == {'limit': 3}
        store.get_all.assert_not_called()


class TestMetrics:
    """Tests for QueryMetrics"""

    @pytest.mark.asyncio
    async def test_match_rate(self, service):
        await service.process_query("findings from 2023")
        await service.process_query("no match here")

        assert service.metrics.match_rate == 50.0
        assert service.metrics.to_dict()['fallback_queries'] == 1

    def test_empty_rates(self):
        metrics = QueryMetrics()

        assert metrics.match_rate == 0.0
        assert metrics.cache_hit_rate == 0.0

    @pytest.mark.asyncio
    async def test_reset_metrics(self, service):
        await service.process_query("findings from 2023")
        service.reset_metrics()
        assert service.metrics.total_queries == 0
