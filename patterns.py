"""
Query pattern definitions for findings queries.
Each pattern pairs a regex with parameter extractors and the filter/sort
builders that turn extracted parameters into a store query.

Priority guidelines:
- Composite patterns (multiple filters): 20-35
- Specific patterns (single filter, risk): 10-15
- Generic finding-type patterns: 5

Patterns with equal priority are tried in the order they appear in
ALL_PATTERNS, so subholding patterns are listed before the free-text
project patterns.
"""

import re
from typing import List, Optional

from matcher import ParameterExtractor, QueryPattern
from models import QueryFilter, QuerySort


# Departments recognised directly in query text
DEPARTMENTS = [
    'IT', 'HR', 'Finance', 'Sales', 'Procurement', 'Legal',
    'Marketing', 'Operations', 'Audit', 'Compliance',
]

_DEPT = '|'.join(DEPARTMENTS)

# Risk score thresholds on nilai (bobot x kadar)
CRITICAL_NILAI = 15
HIGH_NILAI = 10
MEDIUM_NILAI = 5


def _compile(pattern: str) -> 're.Pattern[str]':
    return re.compile(pattern, re.IGNORECASE)


def _sort_by(field: str, direction: str = 'desc'):
    return lambda params: [QuerySort(field, direction)]


def _year(group: int = 1) -> ParameterExtractor:
    return ParameterExtractor('year', 'number', group)


def _department(group: int = 1) -> ParameterExtractor:
    return ParameterExtractor('department', 'string', group, 'capitalize')


IS_FINDING = QueryFilter('code', '!=', '')
IS_NON_FINDING = QueryFilter('code', '==', '')


# =============================================================================
# Temporal (year)
# =============================================================================

TEMPORAL_PATTERNS = [
    # Matches: "findings from 2023", "audit results from 2022"
    QueryPattern(
        id='temporal-year-from',
        name='Temporal Query - Findings from Year',
        category='temporal',
        priority=10,
        regex=_compile(r'(?:findings?|audit results?)\s+from\s+(\d{4})\b'),
        parameter_extractors=[_year()],
        filter_builder=lambda p: [QueryFilter('year', '==', p.get('year'))],
        sort_builder=_sort_by('nilai'),
    ),
    # Matches: "findings in 2023"
    QueryPattern(
        id='temporal-year-in',
        name='Temporal Query - Findings in Year',
        category='temporal',
        priority=10,
        regex=_compile(r'(?:findings?|audit results?)\s+in\s+(\d{4})\b'),
        parameter_extractors=[_year()],
        filter_builder=lambda p: [QueryFilter('year', '==', p.get('year'))],
        sort_builder=_sort_by('nilai'),
    ),
    # Matches: "2023 findings", "show me 2023 findings"
    QueryPattern(
        id='temporal-year-prefix',
        name='Temporal Query - Year Findings',
        category='temporal',
        priority=10,
        regex=_compile(r'\b(\d{4})\s+(?:findings?|audit results?)'),
        parameter_extractors=[_year()],
        filter_builder=lambda p: [QueryFilter('year', '==', p.get('year'))],
        sort_builder=_sort_by('nilai'),
    ),
    QueryPattern(
        id='temporal-show-year',
        name='Temporal Query - Show Year Findings',
        category='temporal',
        priority=10,
        regex=_compile(r'show\s+(?:me\s+)?(\d{4})\s+(?:findings?|audit results?)'),
        parameter_extractors=[_year()],
        filter_builder=lambda p: [QueryFilter('year', '==', p.get('year'))],
        sort_builder=_sort_by('nilai'),
    ),
]


# =============================================================================
# Department
# =============================================================================

DEPARTMENT_PATTERNS = [
    # Matches: "IT findings", "finance department findings"
    QueryPattern(
        id='department-findings',
        name='Department Query - Department Findings',
        category='department',
        priority=10,
        regex=_compile(rf'\b({_DEPT})\s+(?:department\s+)?findings?'),
        parameter_extractors=[_department()],
        filter_builder=lambda p: [QueryFilter('department', '==', p.get('department'))],
        sort_builder=_sort_by('year'),
    ),
    # Matches: "show me HR", "show legal department"
    QueryPattern(
        id='department-show',
        name='Department Query - Show Department',
        category='department',
        priority=10,
        regex=_compile(rf'show\s+(?:me\s+)?({_DEPT})(?:\s+department)?$'),
        parameter_extractors=[_department()],
        filter_builder=lambda p: [QueryFilter('department', '==', p.get('department'))],
        sort_builder=_sort_by('year'),
    ),
    # Matches: "findings from Procurement"
    QueryPattern(
        id='department-from',
        name='Department Query - Findings from Department',
        category='department',
        priority=10,
        regex=_compile(rf'(?:findings?|audit results?)\s+from\s+({_DEPT})\b'),
        parameter_extractors=[_department()],
        filter_builder=lambda p: [QueryFilter('department', '==', p.get('department'))],
        sort_builder=_sort_by('year'),
    ),
]


# =============================================================================
# Risk level (nilai)
# =============================================================================

RISK_PATTERNS = [
    QueryPattern(
        id='risk-critical',
        name='Risk Query - Critical Findings',
        category='risk',
        priority=15,
        regex=_compile(
            r'critical\s+(?:risk\s+)?findings?|findings?\s+(?:with|above)\s+critical\s+risk'
        ),
        filter_builder=lambda p: [QueryFilter('nilai', '>=', CRITICAL_NILAI)],
        sort_builder=_sort_by('nilai'),
    ),
    QueryPattern(
        id='risk-high',
        name='Risk Query - High Risk Findings',
        category='risk',
        priority=15,
        regex=_compile(
            r'high\s+(?:risk\s+)?findings?|findings?\s+(?:with|above)\s+high\s+risk'
        ),
        filter_builder=lambda p: [QueryFilter('nilai', '>=', HIGH_NILAI)],
        sort_builder=_sort_by('nilai'),
    ),
    QueryPattern(
        id='risk-medium',
        name='Risk Query - Medium Risk Findings',
        category='risk',
        priority=15,
        regex=_compile(
            r'medium\s+(?:risk\s+)?findings?|findings?\s+(?:with|at)\s+medium\s+risk'
        ),
        filter_builder=lambda p: [
            QueryFilter('nilai', '>=', MEDIUM_NILAI),
            QueryFilter('nilai', '<', HIGH_NILAI),
        ],
        sort_builder=_sort_by('nilai'),
    ),
    # Matches: "top 10 findings"
    QueryPattern(
        id='risk-top-n',
        name='Risk Query - Top N Findings',
        category='risk',
        priority=15,
        regex=_compile(r'top\s+(\d+)\s+findings?'),
        parameter_extractors=[ParameterExtractor('limit', 'number', 1)],
        filter_builder=lambda p: [],
        sort_builder=_sort_by('nilai'),
    ),
    # Matches: "findings with nilai above 12", "nilai over 12 findings"
    # The second branch supplies min_nilai from group 2 (capture-group fallback)
    QueryPattern(
        id='risk-min-nilai',
        name='Risk Query - Findings Above Nilai',
        category='risk',
        priority=15,
        regex=_compile(
            r'findings?\s+with\s+nilai\s+(?:above|over|of\s+at\s+least)\s+(\d+)'
            r'|nilai\s+(?:above|over)\s+(\d+)\s+findings?'
        ),
        parameter_extractors=[ParameterExtractor('min_nilai', 'number', 1)],
        filter_builder=lambda p: [QueryFilter('nilai', '>=', p.get('min_nilai'))],
        sort_builder=_sort_by('nilai'),
    ),
]


# =============================================================================
# Subholding (SH code)
# =============================================================================

SUBHOLDING_PATTERNS = [
    # Matches: "findings for SH SH01"
    QueryPattern(
        id='subholding-sh-code',
        name='Subholding Query - SH Code',
        category='subholding',
        priority=10,
        regex=_compile(r'(?:findings?|audit results?)\s+for\s+SH\s+([A-Z0-9][A-Z0-9-]*)'),
        parameter_extractors=[ParameterExtractor('sh', 'string', 1, 'uppercase')],
        filter_builder=lambda p: [QueryFilter('sh', '==', p.get('sh'))],
        sort_builder=_sort_by('year'),
    ),
    # Matches: "SH01 subholding findings"
    QueryPattern(
        id='subholding-code-prefix',
        name='Subholding Query - Code Subholding Findings',
        category='subholding',
        priority=10,
        regex=_compile(r'\b([A-Z0-9][A-Z0-9-]*)\s+subholding\s+findings?'),
        parameter_extractors=[ParameterExtractor('sh', 'string', 1, 'uppercase')],
        filter_builder=lambda p: [QueryFilter('sh', '==', p.get('sh'))],
        sort_builder=_sort_by('year'),
    ),
    # Matches: "show me SH01 audit results", "show sh-a findings"
    # Only SH-prefixed codes, other names fall through to project-show
    QueryPattern(
        id='subholding-show',
        name='Subholding Query - Show Code Audit Results',
        category='subholding',
        priority=10,
        regex=_compile(
            r'show\s+(?:me\s+)?(SH\d[A-Z0-9]*|SH-[A-Z0-9]+)\s+(?:audit results?|findings?)$'
        ),
        parameter_extractors=[ParameterExtractor('sh', 'string', 1, 'uppercase')],
        filter_builder=lambda p: [QueryFilter('sh', '==', p.get('sh'))],
        sort_builder=_sort_by('year'),
    ),
]


# =============================================================================
# Project (free-text names)
# =============================================================================

PROJECT_PATTERNS = [
    # Matches: "findings for Grand Indonesia", "audit results for Alpha Tower project"
    QueryPattern(
        id='project-findings-for',
        name='Project Query - Findings for Project',
        category='project',
        priority=10,
        regex=_compile(r'(?:findings?|audit results?)\s+for\s+(.+?)(?:\s+project)?$'),
        parameter_extractors=[ParameterExtractor('project_name', 'string', 1, 'trim')],
        filter_builder=lambda p: [QueryFilter('project_name', '==', p.get('project_name'))],
        sort_builder=_sort_by('year'),
    ),
    # Matches: "show me Citra Garden audit results"
    QueryPattern(
        id='project-show',
        name='Project Query - Show Project Audit Results',
        category='project',
        priority=10,
        regex=_compile(
            r'show\s+(?:me\s+)?(?!(?:only|actual|top|me)\b)(.+?)\s+(?:audit results?|findings?)$'
        ),
        parameter_extractors=[ParameterExtractor('project_name', 'string', 1, 'trim')],
        filter_builder=lambda p: [QueryFilter('project_name', '==', p.get('project_name'))],
        sort_builder=_sort_by('year'),
    ),
    # Matches: "Citra Garden findings", "Alpha Tower project findings"
    # Finding-type and command words are never read as a project name
    QueryPattern(
        id='project-prefix',
        name='Project Query - Project Findings',
        category='project',
        priority=10,
        regex=_compile(r'^(?!(?:only|actual|top|show)\b)(.+?)\s+(?:project\s+)?findings?$'),
        parameter_extractors=[ParameterExtractor('project_name', 'string', 1, 'trim')],
        filter_builder=lambda p: [QueryFilter('project_name', '==', p.get('project_name'))],
        sort_builder=_sort_by('year'),
    ),
]


# =============================================================================
# Composite (multiple filters)
# =============================================================================

COMPOSITE_PATTERNS = [
    # Matches: "show all IT findings 2024"
    QueryPattern(
        id='composite-show-all-dept-findings-year',
        name='Composite Query - Show All Department Findings Year',
        category='composite',
        priority=25,
        regex=_compile(
            rf'show\s+all\s+({_DEPT})\s+findings?\s+(?:(?:from|in)\s+)?(\d{{4}})'
        ),
        parameter_extractors=[_department(1), _year(2)],
        filter_builder=lambda p: [
            QueryFilter('department', '==', p.get('department')),
            QueryFilter('year', '==', p.get('year')),
        ],
        sort_builder=_sort_by('nilai'),
    ),
    # Matches: "IT findings from 2023"
    QueryPattern(
        id='composite-dept-year-from',
        name='Composite Query - Department Findings from Year',
        category='composite',
        priority=20,
        regex=_compile(rf'\b({_DEPT})\s+findings?\s+from\s+(\d{{4}})'),
        parameter_extractors=[_department(1), _year(2)],
        filter_builder=lambda p: [
            QueryFilter('department', '==', p.get('department')),
            QueryFilter('year', '==', p.get('year')),
        ],
        sort_builder=_sort_by('nilai'),
    ),
    QueryPattern(
        id='composite-dept-year-in',
        name='Composite Query - Department Findings in Year',
        category='composite',
        priority=20,
        regex=_compile(rf'\b({_DEPT})\s+findings?\s+in\s+(\d{{4}})'),
        parameter_extractors=[_department(1), _year(2)],
        filter_builder=lambda p: [
            QueryFilter('department', '==', p.get('department')),
            QueryFilter('year', '==', p.get('year')),
        ],
        sort_builder=_sort_by('nilai'),
    ),
    # Matches: "2023 IT findings"
    QueryPattern(
        id='composite-year-dept',
        name='Composite Query - Year Department Findings',
        category='composite',
        priority=20,
        regex=_compile(rf'\b(\d{{4}})\s+({_DEPT})\s+findings?'),
        parameter_extractors=[_year(1), _department(2)],
        filter_builder=lambda p: [
            QueryFilter('department', '==', p.get('department')),
            QueryFilter('year', '==', p.get('year')),
        ],
        sort_builder=_sort_by('nilai'),
    ),
    QueryPattern(
        id='composite-critical-dept',
        name='Composite Query - Critical Department Findings',
        category='composite',
        priority=25,
        regex=_compile(rf'critical\s+({_DEPT})\s+findings?'),
        parameter_extractors=[_department()],
        filter_builder=lambda p: [
            QueryFilter('department', '==', p.get('department')),
            QueryFilter('nilai', '>=', CRITICAL_NILAI),
        ],
        sort_builder=_sort_by('nilai'),
    ),
    QueryPattern(
        id='composite-dept-critical',
        name='Composite Query - Department Critical Findings',
        category='composite',
        priority=25,
        regex=_compile(rf'\b({_DEPT})\s+critical\s+findings?'),
        parameter_extractors=[_department()],
        filter_builder=lambda p: [
            QueryFilter('department', '==', p.get('department')),
            QueryFilter('nilai', '>=', CRITICAL_NILAI),
        ],
        sort_builder=_sort_by('nilai'),
    ),
    QueryPattern(
        id='composite-high-risk-dept',
        name='Composite Query - High Risk Department Findings',
        category='composite',
        priority=25,
        regex=_compile(rf'high\s+risk\s+({_DEPT})\s+findings?'),
        parameter_extractors=[_department()],
        filter_builder=lambda p: [
            QueryFilter('department', '==', p.get('department')),
            QueryFilter('nilai', '>=', HIGH_NILAI),
        ],
        sort_builder=_sort_by('nilai'),
    ),
    QueryPattern(
        id='composite-dept-high-risk',
        name='Composite Query - Department High Risk Findings',
        category='composite',
        priority=25,
        regex=_compile(rf'\b({_DEPT})\s+high\s+risk\s+findings?'),
        parameter_extractors=[_department()],
        filter_builder=lambda p: [
            QueryFilter('department', '==', p.get('department')),
            QueryFilter('nilai', '>=', HIGH_NILAI),
        ],
        sort_builder=_sort_by('nilai'),
    ),
]


# =============================================================================
# Finding type (code empty or not)
# =============================================================================

FINDING_TYPE_PATTERNS = [
    QueryPattern(
        id='finding-only',
        name='Finding Type - Only Findings',
        category='finding-type',
        priority=5,
        regex=_compile(r'(?:only|actual)\s+findings?'),
        filter_builder=lambda p: [IS_FINDING],
        sort_builder=_sort_by('nilai'),
    ),
    QueryPattern(
        id='finding-exclude-non',
        name='Finding Type - Exclude Non-Findings',
        category='finding-type',
        priority=5,
        regex=_compile(r'exclude\s+non-findings?'),
        filter_builder=lambda p: [IS_FINDING],
        sort_builder=_sort_by('nilai'),
    ),
    QueryPattern(
        id='finding-non-findings',
        name='Finding Type - Non-Findings',
        category='finding-type',
        priority=5,
        regex=_compile(r'non-findings?'),
        filter_builder=lambda p: [IS_NON_FINDING],
        sort_builder=_sort_by('year'),
    ),
]


COMPOSITE_FINDING_TYPE_PATTERNS = [
    # Matches: "only findings from 2023", "actual findings in 2022"
    QueryPattern(
        id='composite-only-findings-year',
        name='Composite - Only Findings from Year',
        category='composite-finding-type',
        priority=30,
        regex=_compile(r'(?:only|actual)\s+findings?\s+(?:from|in)\s+(\d{4})'),
        parameter_extractors=[_year()],
        filter_builder=lambda p: [
            IS_FINDING,
            QueryFilter('year', '==', p.get('year')),
        ],
        sort_builder=_sort_by('nilai'),
    ),
    # Matches: "only findings IT"
    QueryPattern(
        id='composite-only-findings-dept',
        name='Composite - Only Findings Department',
        category='composite-finding-type',
        priority=30,
        regex=_compile(rf'(?:only|actual)\s+findings?\s+({_DEPT})\b'),
        parameter_extractors=[_department()],
        filter_builder=lambda p: [
            IS_FINDING,
            QueryFilter('department', '==', p.get('department')),
        ],
        sort_builder=_sort_by('nilai'),
    ),
    # Matches: "only findings IT from 2023"
    QueryPattern(
        id='composite-only-findings-dept-year',
        name='Composite - Only Findings Department from Year',
        category='composite-finding-type',
        priority=35,
        regex=_compile(
            rf'(?:only|actual)\s+findings?\s+({_DEPT})\s+(?:from|in)\s+(\d{{4}})'
        ),
        parameter_extractors=[_department(1), _year(2)],
        filter_builder=lambda p: [
            IS_FINDING,
            QueryFilter('department', '==', p.get('department')),
            QueryFilter('year', '==', p.get('year')),
        ],
        sort_builder=_sort_by('nilai'),
    ),
    QueryPattern(
        id='composite-non-findings-year',
        name='Composite - Non-Findings from Year',
        category='composite-finding-type',
        priority=30,
        regex=_compile(r'non-findings?\s+(?:from|in)\s+(\d{4})'),
        parameter_extractors=[_year()],
        filter_builder=lambda p: [
            IS_NON_FINDING,
            QueryFilter('year', '==', p.get('year')),
        ],
        sort_builder=_sort_by('year'),
    ),
    QueryPattern(
        id='composite-non-findings-dept',
        name='Composite - Non-Findings Department',
        category='composite-finding-type',
        priority=30,
        regex=_compile(rf'non-findings?\s+({_DEPT})\b'),
        parameter_extractors=[_department()],
        filter_builder=lambda p: [
            IS_NON_FINDING,
            QueryFilter('department', '==', p.get('department')),
        ],
        sort_builder=_sort_by('year'),
    ),
    # Matches: "only findings critical", "only critical findings"
    QueryPattern(
        id='composite-only-findings-critical',
        name='Composite - Only Critical Findings',
        category='composite-finding-type',
        priority=30,
        regex=_compile(r'(?:only|actual)\s+(?:findings?\s+critical|critical\s+findings?)'),
        filter_builder=lambda p: [
            IS_FINDING,
            QueryFilter('nilai', '>=', CRITICAL_NILAI),
        ],
        sort_builder=_sort_by('nilai'),
    ),
]


ALL_PATTERNS = [
    *COMPOSITE_FINDING_TYPE_PATTERNS,
    *COMPOSITE_PATTERNS,
    *TEMPORAL_PATTERNS,
    *DEPARTMENT_PATTERNS,
    *RISK_PATTERNS,
    *SUBHOLDING_PATTERNS,
    *PROJECT_PATTERNS,
    *FINDING_TYPE_PATTERNS,
]

_PATTERNS_BY_CATEGORY = {
    'composite': COMPOSITE_PATTERNS,
    'composite-finding-type': COMPOSITE_FINDING_TYPE_PATTERNS,
    'temporal': TEMPORAL_PATTERNS,
    'department': DEPARTMENT_PATTERNS,
    'risk': RISK_PATTERNS,
    'project': PROJECT_PATTERNS,
    'subholding': SUBHOLDING_PATTERNS,
    'finding-type': FINDING_TYPE_PATTERNS,
}


def get_patterns_by_category(category: str) -> List[QueryPattern]:
    """Return the patterns in a category, or an empty list if unknown."""
    return list(_PATTERNS_BY_CATEGORY.get(category.lower(), []))


def get_pattern_by_id(pattern_id: str) -> Optional[QueryPattern]:
    for pattern in ALL_PATTERNS:
        if pattern.id == pattern_id:
            return pattern
    return None
