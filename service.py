"""
Query service coordinating pattern matching, execution, result caching and
match metrics.
"""

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from config import QueryConfig
from departments import DepartmentLookup
from executor import QueryExecutor
from matcher import MatchResult, QueryMatcher, QueryPattern, ValidationResult
from models import QueryResult
from patterns import ALL_PATTERNS
from store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class QueryMetrics:
    total_queries: int = 0
    matched_queries: int = 0
    fallback_queries: int = 0
    average_execution_time: float = 0.0
    cache_hits: int = 0
    cache_misses: int = 0

    @property
    def match_rate(self) -> float:
        """Percentage of queries answered by a pattern."""
        if self.total_queries == 0:
            return 0.0
        return self.matched_queries / self.total_queries * 100

    @property
    def cache_hit_rate(self) -> float:
        attempts = self.cache_hits + self.cache_misses
        if attempts == 0:
            return 0.0
        return self.cache_hits / attempts * 100

    def to_dict(self) -> Dict[str, float]:
        data = dataclasses.asdict(self)
        data['match_rate'] = self.match_rate
        data['cache_hit_rate'] = self.cache_hit_rate
        return data


@dataclass
class _CacheEntry:
    result: QueryResult
    timestamp: float
    ttl: float


class QueryService:
    """
    Answers free-text findings queries without a language model.

    process_query() returns None when no pattern matches, so the caller can
    fall back to another strategy.

    Example:
        service = QueryService(store, directory)
        result = await service.process_query("critical IT findings")
        if result is None:
            ...  # fall back
    """

    def __init__(
        self,
        store: RecordStore,
        departments: Optional[DepartmentLookup] = None,
        patterns: Optional[List[QueryPattern]] = None,
        config: Optional[QueryConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or QueryConfig()
        self.matcher = QueryMatcher(ALL_PATTERNS if patterns is None else patterns)
        self.executor = QueryExecutor(store, departments, default_limit=self.config.max_results)
        self.metrics = QueryMetrics()
        self._cache: Dict[str, _CacheEntry] = {}
        self._cache_enabled = self.config.cache_enabled
        self._cache_ttl = self.config.cache_ttl
        self._clock = clock

    async def process_query(self, query: str) -> Optional[QueryResult]:
        """
        Match and execute a query.

        Returns:
            QueryResult, or None if the feature is disabled, no pattern
            matched, or matching failed unexpectedly.
        """
        start_time = self._clock()

        if not self.config.enabled:
            self._record_fallback(query)
            return None

        try:
            if self._cache_enabled:
                cached = self._get_cached_result(query)
                if cached is not None:
                    elapsed = self._elapsed_ms(start_time)
                    self._record_match(cached.metadata.pattern_matched, elapsed, cache_hit=True)
                    return dataclasses.replace(
                        cached,
                        findings=list(cached.findings),
                        metadata=dataclasses.replace(cached.metadata, execution_time_ms=elapsed),
                    )

            match_result = self.matcher.match(query)
            if not match_result.matched or match_result.pattern is None:
                self._record_fallback(query)
                return None

            result = await self.executor.execute(match_result.pattern, match_result.params or {})

            elapsed = self._elapsed_ms(start_time)
            result.metadata.execution_time_ms = elapsed
            self._record_match(match_result.pattern.id, elapsed, cache_hit=False)

            if elapsed > self.config.max_execution_ms and self.config.log_execution_time:
                logger.warning(
                    "Query %r took %.1f ms (target %d ms)", query, elapsed, self.config.max_execution_ms
                )

            # Failed queries stay uncached so a retry reaches the store
            if self._cache_enabled and result.metadata.error is None:
                self._cache_result(query, result)

            return result

        except Exception:
            logger.exception("Query service failed for %r", query)
            self._record_fallback(query)
            return None

    # Pattern management

    def get_available_patterns(self) -> List[QueryPattern]:
        return self.matcher.get_patterns()

    def add_custom_pattern(self, pattern: QueryPattern) -> None:
        """
        Raises:
            PatternValidationError: If the pattern is invalid or conflicts
        """
        self.matcher.add_pattern(pattern)
        # Cached answers may now resolve to a different pattern
        self.clear_cache()

    def remove_pattern(self, pattern_id: str) -> bool:
        removed = self.matcher.remove_pattern(pattern_id)
        if removed:
            self.clear_cache()
        return removed

    def get_pattern_by_id(self, pattern_id: str) -> Optional[QueryPattern]:
        return self.matcher.get_pattern_by_id(pattern_id)

    def validate_pattern(self, pattern: QueryPattern) -> ValidationResult:
        return self.matcher.validate_pattern(pattern)

    def match_query(self, query: str) -> MatchResult:
        """Match without executing."""
        return self.matcher.match(query)

    # Cache

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_cache_stats(self) -> Dict[str, object]:
        return {
            'size': len(self._cache),
            'enabled': self._cache_enabled,
            'ttl': self._cache_ttl,
        }

    def set_cache_enabled(self, enabled: bool) -> None:
        self._cache_enabled = enabled
        if not enabled:
            self.clear_cache()

    def set_cache_ttl(self, ttl: float) -> None:
        self._cache_ttl = ttl

    def reset_metrics(self) -> None:
        self.metrics = QueryMetrics()

    @staticmethod
    def _cache_key(query: str) -> str:
        return query.strip().lower()

    def _get_cached_result(self, query: str) -> Optional[QueryResult]:
        key = self._cache_key(query)
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > entry.ttl:
            del self._cache[key]
            return None
        return entry.result

    def _cache_result(self, query: str, result: QueryResult) -> None:
        now = self._clock()
        self._cache[self._cache_key(query)] = _CacheEntry(result, now, self._cache_ttl)
        expired = [k for k, e in self._cache.items() if now - e.timestamp > e.ttl]
        for key in expired:
            del self._cache[key]

    def _elapsed_ms(self, start_time: float) -> float:
        return round((self._clock() - start_time) * 1000, 2)

    # Metrics

    def _record_match(self, pattern_id: str, execution_time: float, cache_hit: bool) -> None:
        if not self.config.monitoring:
            return

        metrics = self.metrics
        metrics.total_queries += 1
        metrics.matched_queries += 1
        if cache_hit:
            metrics.cache_hits += 1
        else:
            metrics.cache_misses += 1

        total_time = metrics.average_execution_time * (metrics.total_queries - 1) + execution_time
        metrics.average_execution_time = total_time / metrics.total_queries

        if self.config.log_matches:
            logger.info(
                "Query matched %s (%.1f ms)%s",
                pattern_id, execution_time, ' [cache hit]' if cache_hit else '',
            )

    def _record_fallback(self, query: str) -> None:
        if not self.config.monitoring:
            return

        self.metrics.total_queries += 1
        self.metrics.fallback_queries += 1

        if self.config.log_fallbacks:
            preview = query[:50] + ('...' if len(query) > 50 else '')
            logger.info("No pattern for query %r, falling back", preview)
