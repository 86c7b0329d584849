"""
Root conftest for the collabsheet test suite.

Provides:
- An AppConfig built from a fixed environment (no .env lookups)
- A fake clock whose ``sleep`` advances time and records every pause
- Workbook builders for company lists and collaboration matrices
- A scripted LLM client stub
"""

import pytest
from unittest.mock import MagicMock

from collabsheet.enrichment.cell_store import InMemoryWorkbook
from collabsheet.enrichment.checkpoint import MemoryStore
from collabsheet.enrichment.llm_client import LlmClient
from collabsheet.enrichment.retry_policy import RetryPolicy
from config.settings import AppConfig


TEST_ENV = {
    'OPENAI_API_KEY': 'test-openai',
    'ANTHROPIC_API_KEY': 'test-anthropic',
    'PERPLEXITY_API_KEY': 'test-perplexity',
    'RATE_LIMIT_DELAY': '1',
    'ROW_DELAY': '2',
    'RETRY_BASE_DELAY': '2',
}


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

class FakeClock:
    """Monotonic clock that only moves when ``sleep`` or ``advance`` is called."""

    def __init__(self, start=0.0):
        self.now = start
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def fake_clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Config and collaborators
# ---------------------------------------------------------------------------

@pytest.fixture
def app_config():
    """AppConfig with test keys and the default layout."""
    return AppConfig.from_env(TEST_ENV)


@pytest.fixture
def retry_policy(fake_clock):
    return RetryPolicy(max_attempts=3, base_delay=2.0, sleep=fake_clock.sleep)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def stub_llm():
    """LlmClient stand-in; set ``complete.side_effect`` / ``return_value`` per test."""
    return MagicMock(spec=LlmClient)


# ---------------------------------------------------------------------------
# Workbook builders
# ---------------------------------------------------------------------------

COMPANY_HEADERS = ['Company', 'Website', 'Business Overview', 'Target Audience', 'Products', 'Pricing']


def company_row(name, filled=True):
    if not filled:
        return [name, f'https://{name.lower()}.example', '', '', '', '']
    return [
        name,
        f'https://{name.lower()}.example',
        f'{name} builds software',
        'Mid-market retailers',
        f'{name} Suite',
        'Subscription',
    ]


def matrix_rows(names, fill=None):
    """Header row/column of ``names``; ``fill(i, j)`` gives each data cell."""
    rows = [[''] + list(names)]
    for i, name in enumerate(names):
        rows.append([name] + [fill(i, j) if fill else '' for j in range(len(names))])
    return rows


@pytest.fixture
def make_matrix_workbook(app_config):
    """Build a workbook with a full company list and a collaboration matrix."""

    def _make(names, fill=None, missing_companies=()):
        companies = [COMPANY_HEADERS] + [
            company_row(n) for n in names if n not in missing_companies
        ]
        return InMemoryWorkbook({
            app_config.companies.sheet_name: companies,
            app_config.matrix.sheet_name: matrix_rows(names, fill),
        })

    return _make


@pytest.fixture
def make_company_row():
    return company_row
