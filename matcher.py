"""
Pattern matching for natural-language findings queries.
Registers query patterns, matches phrases in priority order and extracts
typed parameters from the winning pattern's capture groups.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from models import QueryFilter, QuerySort

logger = logging.getLogger(__name__)

ParamValue = Union[str, int, float, bool]
ExtractedParams = Dict[str, ParamValue]

PARAMETER_TYPES = ('string', 'number', 'boolean')
NORMALIZERS = ('capitalize', 'uppercase', 'lowercase', 'trim')


@dataclass(frozen=True)
class ParameterExtractor:
    """
    Reads one named parameter out of a regex match.

    capture_group is the 1-based group index (0 is the whole match).
    """
    name: str
    type: str = 'string'
    capture_group: int = 1
    normalizer: Optional[str] = None


@dataclass(frozen=True)
class QueryPattern:
    id: str
    name: str
    priority: int
    regex: 're.Pattern[str]'
    filter_builder: Callable[[ExtractedParams], List[QueryFilter]]
    sort_builder: Callable[[ExtractedParams], List[QuerySort]]
    parameter_extractors: List[ParameterExtractor] = field(default_factory=list)
    category: str = ''


@dataclass
class MatchResult:
    matched: bool
    confidence: float = 0.0
    pattern: Optional[QueryPattern] = None
    params: Optional[ExtractedParams] = None


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)


class PatternValidationError(ValueError):
    """Raised when a pattern is malformed or conflicts with a registered one."""

    def __init__(self, pattern_id: Any, errors: List[str], conflicts: List[str]):
        self.pattern_id = pattern_id
        self.errors = errors
        self.conflicts = conflicts
        if errors:
            message = f'Invalid pattern "{pattern_id}": {", ".join(errors)}'
        else:
            message = f'Pattern "{pattern_id}" conflicts with: {", ".join(conflicts)}'
        super().__init__(message)


class QueryMatcher:
    """
    Matches user queries against registered patterns.

    Patterns are kept sorted by descending priority; ties keep insertion
    order. The first pattern whose regex matches wins.

    Example:
        >>> matcher = QueryMatcher(ALL_PATTERNS)
        >>> result = matcher.match("IT findings from 2023")
        >>> result.pattern.id, result.params
        ('composite-dept-year-from', {'department': 'It', 'year': 2023})
    """

    def __init__(self, patterns: Optional[List[QueryPattern]] = None):
        self._patterns: List[QueryPattern] = []
        self._sorted_patterns: List[QueryPattern] = []
        for pattern in patterns or []:
            self.add_pattern(pattern)

    def match(self, query: str) -> MatchResult:
        """
        Match a query against registered patterns.

        Args:
            query: Free-text user phrase

        Returns:
            MatchResult with the highest priority pattern that matched,
            or matched=False with zero confidence.
        """
        if not query or not query.strip():
            return MatchResult(matched=False, confidence=0.0)

        normalized_query = query.strip()

        for pattern in self._sorted_patterns:
            match = pattern.regex.search(normalized_query)
            if match:
                params = self._extract_parameters(match, pattern.parameter_extractors)
                logger.debug("Query %r matched pattern %s", normalized_query, pattern.id)
                return MatchResult(
                    matched=True,
                    confidence=1.0,
                    pattern=pattern,
                    params=params,
                )

        return MatchResult(matched=False, confidence=0.0)

    def add_pattern(self, pattern: QueryPattern) -> None:
        """
        Validate and register a pattern.

        Raises:
            PatternValidationError: If the pattern is malformed or its regex
                is identical to an already registered pattern.
        """
        validation = self.validate_pattern(pattern)
        if not validation.valid or validation.conflicts:
            raise PatternValidationError(
                getattr(pattern, 'id', None),
                validation.errors,
                validation.conflicts,
            )

        self._patterns.append(pattern)
        self._sort_patterns_by_priority()

    def remove_pattern(self, pattern_id: str) -> bool:
        for index, pattern in enumerate(self._patterns):
            if pattern.id == pattern_id:
                del self._patterns[index]
                self._sort_patterns_by_priority()
                return True
        return False

    def get_patterns(self) -> List[QueryPattern]:
        """Registered patterns in registration order."""
        return list(self._patterns)

    def get_sorted_patterns(self) -> List[QueryPattern]:
        """Registered patterns in matching order."""
        return list(self._sorted_patterns)

    def get_pattern_by_id(self, pattern_id: str) -> Optional[QueryPattern]:
        for pattern in self._patterns:
            if pattern.id == pattern_id:
                return pattern
        return None

    def clear_patterns(self) -> None:
        self._patterns = []
        self._sorted_patterns = []

    def validate_pattern(self, pattern: QueryPattern) -> ValidationResult:
        """
        Check a pattern for missing fields, malformed extractors and
        conflicts with registered patterns. Does not register it.
        """
        errors = []
        conflicts = []

        pattern_id = getattr(pattern, 'id', None)
        if not isinstance(pattern_id, str) or not pattern_id.strip():
            errors.append('Pattern ID is required')
        elif self.get_pattern_by_id(pattern_id) is not None:
            errors.append(f'Pattern ID "{pattern_id}" is already registered')

        name = getattr(pattern, 'name', None)
        if not isinstance(name, str) or not name.strip():
            errors.append('Pattern name is required')

        priority = getattr(pattern, 'priority', None)
        if not isinstance(priority, int) or isinstance(priority, bool):
            errors.append('Pattern priority must be an integer')

        regex = getattr(pattern, 'regex', None)
        if not isinstance(regex, re.Pattern):
            errors.append('Pattern regex must be a compiled regular expression')

        extractors = getattr(pattern, 'parameter_extractors', None)
        if not isinstance(extractors, list):
            errors.append('Parameter extractors must be a list')
        else:
            for index, extractor in enumerate(extractors):
                errors.extend(self._validate_extractor(index, extractor))

        if not callable(getattr(pattern, 'filter_builder', None)):
            errors.append('Filter builder must be callable')

        if not callable(getattr(pattern, 'sort_builder', None)):
            errors.append('Sort builder must be callable')

        if isinstance(regex, re.Pattern):
            for existing in self._patterns:
                if existing.id == pattern_id:
                    continue
                if (existing.regex.pattern == regex.pattern
                        and existing.regex.flags == regex.flags):
                    conflicts.append(existing.id)

        return ValidationResult(
            valid=not errors,
            errors=errors,
            conflicts=conflicts,
        )

    @staticmethod
    def _validate_extractor(index: int, extractor: Any) -> List[str]:
        errors = []
        if not getattr(extractor, 'name', None):
            errors.append(f'Parameter extractor {index} missing name')
        if getattr(extractor, 'type', None) not in PARAMETER_TYPES:
            errors.append(f'Parameter extractor {index} has invalid type')
        group = getattr(extractor, 'capture_group', None)
        if not isinstance(group, int) or isinstance(group, bool) or group < 0:
            errors.append(f'Parameter extractor {index} has invalid capture group')
        normalizer = getattr(extractor, 'normalizer', None)
        if normalizer is not None and normalizer not in NORMALIZERS:
            errors.append(f'Parameter extractor {index} has invalid normalizer')
        return errors

    def _sort_patterns_by_priority(self) -> None:
        # sorted() is stable, so equal priorities keep registration order
        self._sorted_patterns = sorted(self._patterns, key=lambda p: -p.priority)

    def _extract_parameters(
        self,
        match: 're.Match[str]',
        extractors: List[ParameterExtractor],
    ) -> ExtractedParams:
        params: ExtractedParams = {}

        for extractor in extractors:
            # Alternation branches may supply the same value from the next group
            value = (_group_or_none(match, extractor.capture_group)
                     or _group_or_none(match, extractor.capture_group + 1))
            if value is None:
                continue

            if extractor.normalizer:
                value = normalize_value(value, extractor.normalizer)

            params[extractor.name] = convert_type(value, extractor.type)

        return params


def _group_or_none(match: 're.Match[str]', index: int) -> Optional[str]:
    if index > match.re.groups:
        return None
    return match.group(index)


def normalize_value(value: str, normalizer: str) -> str:
    """
    Apply a named normalizer to a captured string.

    capitalize upper-cases the first character and lower-cases the rest of
    the whole string (not per word).
    """
    if normalizer == 'capitalize':
        return value[:1].upper() + value[1:].lower()
    if normalizer == 'uppercase':
        return value.upper()
    if normalizer == 'lowercase':
        return value.lower()
    if normalizer == 'trim':
        return value.strip()
    return value


def convert_type(value: str, value_type: str) -> ParamValue:
    """Convert a captured string to the extractor's declared type."""
    if value_type == 'number':
        return _to_number(value)
    if value_type == 'boolean':
        return value.lower() == 'true' or value == '1'
    return value


def _to_number(value: str) -> Union[int, float]:
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return 0
    if number != number or number in (float('inf'), float('-inf')):
        return 0
    return number
