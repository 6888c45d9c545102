"""
Department lookup for expanding department filters.

Audit results store departments under many literal spellings
("Departemen IT", "IT & Sistem Informasi", ...). A Department groups those
spellings under one normalized name and category so a query for "IT" can be
fanned out over every spelling actually present in the store.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Protocol

logger = logging.getLogger(__name__)

STOPWORDS = {
    'departemen', 'department', 'departement', 'dan', 'dengan',
    'pihak', 'ketiga', 'unit', 'biro',
}

# Checked in order, more specific categories first.
# Keywords of three letters or fewer must match a whole word.
CATEGORY_KEYWORDS = [
    ('Hospitality & F&B', ['food', 'beverage', 'f&b', 'fnb', 'restaurant', 'hotel',
                           'hospitality', 'golf', 'club', 'villa', 'fc']),
    ('Outsourcing & Third Party', ['outsource', 'third party', 'pihak ketiga',
                                   'vendor', 'suplemen']),
    ('IT', ['it', 'teknologi', 'informasi', 'technology', 'ict', 'sistem informasi']),
    ('Finance', ['finance', 'keuangan', 'accounting', 'fad', 'treasury',
                 'investasi', 'investment', 'tax', 'pajak']),
    ('HR', ['hr', 'hrd', 'hcm', 'sdm', 'sumber daya manusia', 'people', 'talent']),
    ('Marketing & Sales', ['marketing', 'sales', 'hbd', 'promotion', 'admission',
                           'commercial']),
    ('Property Management', ['estate', 'property', 'building management',
                             'building operation', 'tenant', 'leasing', 'tanah', 'land']),
    ('Engineering & Construction', ['engineering', 'teknik', 'konstruksi', 'construction',
                                    'qs', 'quantity surveyor', 'maintenance', 'gcm']),
    ('Legal & Compliance', ['legal', 'hukum', 'compliance', 'regulatory']),
    ('Audit & Risk', ['audit', 'risk', 'risiko', 'apu', 'ppt', 'internal control']),
    ('Planning & Development', ['perencanaan', 'planning', 'development', 'fsd', 'fdd']),
    ('Healthcare', ['medis', 'medical', 'health', 'kesehatan', 'keperawatan',
                    'nursing', 'icd']),
    ('Insurance & Actuarial', ['actuary', 'actuarial', 'underwriting', 'insurance',
                               'asuransi', 'klaim']),
    ('CSR & Community', ['csr', 'community', 'social', 'responsibility',
                         'pendidikan', 'education']),
    ('Security', ['security', 'keamanan']),
    ('Corporate', ['corporate', 'executive', 'board', 'direksi']),
    ('Supply Chain & Procurement', ['supply', 'procurement', 'purchasing', 'logistic',
                                    'warehouse', 'ffb', 'tbs', 'sortasi']),
    ('Academic & Administration', ['akademik', 'academic', 'mahasiswa', 'student',
                                   'alumni', 'biro administrasi']),
    ('Operations', ['operation', 'operasi', 'umum', 'general affairs', 'ga',
                    'housekeeping', 'house keeping', 'front office',
                    'customer service', 'layanan pelanggan']),
]


@dataclass
class Department:
    """A normalized department and the literal spellings found in the data."""
    name: str
    original_names: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    category: Optional[str] = None


class DepartmentLookup(Protocol):
    async def get_by_category(self, category: str) -> List[Department]:
        ...

    async def search_by_name(self, query: str) -> List[Department]:
        ...

    async def find_or_create(self, raw_name: str) -> Department:
        ...


def normalize_name(raw_name: str) -> str:
    """
    Normalize a raw department name.

    Example:
        >>> normalize_name('Departemen  IT/Sistem-Informasi')
        'IT Sistem Informasi'
    """
    name = re.sub(r'[/\-,()&]', ' ', raw_name.strip())
    name = re.sub(r'\s+', ' ', name)
    name = re.sub(r'^(?:Departemen|Department|Departement)\s+', '', name, flags=re.IGNORECASE)
    return name.strip()


def generate_keywords(name: str) -> List[str]:
    """
    Searchable keywords for a department name: lowercase words longer than
    two characters minus stopwords, plus the full name joined by underscores.
    """
    normalized = name.lower()
    words = re.findall(r'\w+', normalized)
    keywords = [w for w in words if len(w) > 2 and w not in STOPWORDS]

    full_keyword = re.sub(r'\s+', '_', normalized.strip())
    if len(full_keyword) > 2:
        keywords.append(full_keyword)

    # dict keeps first-seen order
    return list(dict.fromkeys(keywords))


def categorize(name: str) -> str:
    """Assign a department category from keywords in its name."""
    lower = name.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        for keyword in keywords:
            if len(keyword) <= 3:
                if re.search(rf'\b{re.escape(keyword)}\b', lower):
                    return category
            elif keyword in lower:
                return category
    return 'Other'


class DepartmentDirectory:
    """
    In-memory department lookup.

    Example:
        directory = DepartmentDirectory.from_records(store.records)
        departments = await directory.get_by_category('IT')
    """

    def __init__(self, departments: Optional[Iterable[Department]] = None):
        self._departments: List[Department] = list(departments or [])

    @classmethod
    def from_records(cls, records: Iterable) -> 'DepartmentDirectory':
        """Build a directory from the department spellings used by records."""
        directory = cls()
        for record in records:
            raw_name = record.get('department') if isinstance(record, dict) else record.department
            if raw_name:
                directory._find_or_create(raw_name)
        logger.debug("Built department directory with %d departments", len(directory))
        return directory

    def __len__(self) -> int:
        return len(self._departments)

    @property
    def departments(self) -> List[Department]:
        return list(self._departments)

    async def get_by_category(self, category: str) -> List[Department]:
        wanted = category.strip().lower()
        matches = [d for d in self._departments if (d.category or '').lower() == wanted]
        return sorted(matches, key=lambda d: d.name)

    async def search_by_name(self, query: str) -> List[Department]:
        """Departments whose name, spellings or keywords contain query."""
        lower_query = query.strip().lower()
        if not lower_query:
            return []
        return [
            d for d in self._departments
            if lower_query in d.name.lower()
            or any(lower_query in n.lower() for n in d.original_names)
            or any(lower_query in k for k in d.keywords)
        ]

    async def find_or_create(self, raw_name: str) -> Department:
        return self._find_or_create(raw_name)

    def _find_or_create(self, raw_name: str) -> Department:
        normalized = normalize_name(raw_name)
        keywords = generate_keywords(normalized)

        # Short names like "IT" produce no keywords and match on name alone
        for department in self._departments:
            if ((keywords and keywords[0] in department.keywords)
                    or department.name.lower() == normalized.lower()):
                if raw_name not in department.original_names:
                    department.original_names.append(raw_name)
                return department

        department = Department(
            name=normalized,
            original_names=[raw_name],
            keywords=keywords,
            category=categorize(normalized),
        )
        self._departments.append(department)
        logger.debug("Created department %r (%s)", department.name, department.category)
        return department
