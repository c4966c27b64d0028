"""
Layer 1: template-based search queries per account.

Output is fully determined by the account label; no randomness.
"""
from dataclasses import dataclass
from typing import List

QUERY_TEMPLATES = (
    ('exec_hire', (
        '{name} appointed VP of Learning',
        '{name} hired Head of Enablement',
        '{name} Chief Learning Officer',
        '{name} new VP Enablement',
    )),
    ('exec_departure', (
        '{name} VP of Learning left',
        '{name} Head of Enablement resigned',
        '{name} executive departure learning',
    )),
    ('layoff', (
        '{name} layoffs',
        '{name} workforce reduction',
        '{name} job cuts',
        '{name} restructuring',
    )),
    ('headcount_growth', (
        '{name} hiring expansion',
        '{name} plans to hire',
        '{name} expanding workforce',
    )),
)

QUERY_CATEGORIES = tuple(category for category, _ in QUERY_TEMPLATES)


@dataclass(frozen=True)
class SearchQuery:
    category: str
    query: str


def account_label(domain, account_name=None) -> str:
    """Account name, else domain, else "company"."""
    return (account_name or '').strip() or (domain or '').strip() or 'company'


def build_queries(domain, account_name=None) -> List[SearchQuery]:
    name = account_label(domain, account_name)
    return [
        SearchQuery(category=category, query=template.format(name=name))
        for category, templates in QUERY_TEMPLATES
        for template in templates
    ]
