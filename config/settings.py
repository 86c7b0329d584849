"""
Settings for the collabsheet enrichment tools.

Environment is read once (``.env`` via python-dotenv) and turned into an
explicit ``AppConfig`` record that the CLI injects into every workflow.
Engines never read the environment themselves.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

from collabsheet.enrichment.exceptions import ConfigurationError
from collabsheet.enrichment.llm_client import ProviderConfig, ProviderKind

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# Load environment variables from .env file
load_dotenv(BASE_DIR / ".env")
load_dotenv()

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "correlation_id": {
            "()": "config.logging_filters.CorrelationIdFilter",
        },
    },
    "formatters": {
        "standard": {
            "format": "%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s",
            "datefmt": "%H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "filters": ["correlation_id"],
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "urllib3": {"level": "WARNING"},
        "httpx": {"level": "WARNING"},
        "openai": {"level": "WARNING"},
        "anthropic": {"level": "WARNING"},
    },
}

# Host execution limit the soft deadline is derived from (seconds)
HOST_TIME_LIMIT = 300.0
SOFT_DEADLINE_RATIO = 0.9

# The probability pass historically starts at row 17 / column Q when no
# checkpoint exists. Kept as a named default; override with
# PROBABILITY_START_ROW / PROBABILITY_START_COL.
DEFAULT_PROBABILITY_START: Tuple[int, int] = (17, 17)


# ────────────────────────────────────────────────────────────────
# Column layouts
# ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CompanyColumns:
    """1-based column positions on the company list sheet."""
    sheet_name: str = "List of companies"
    name: int = 1
    website: int = 2
    business_overview: int = 3
    target_audience: int = 4
    products: int = 5
    pricing: int = 6

    @property
    def width(self) -> int:
        return self.pricing


@dataclass(frozen=True)
class MatrixLayout:
    """Header row/column and first data cell of the collaboration matrix."""
    sheet_name: str = "CollaborationMatrix"
    header_row: int = 1
    header_col: int = 1
    first_data_row: int = 2
    first_data_col: int = 2


@dataclass(frozen=True)
class ContactColumns:
    """Header names on the contacts sheet. Alternatives are tried in order."""
    sheet_name: str = "Contacts"
    name: str = "Name"
    linkedin: Tuple[str, ...] = ("LinkedIn Information",)
    connections: Tuple[str, ...] = ("Potential Connections", "Potential Conn")
    outreach: Tuple[str, ...] = ("Outreach Suggestions", "Outreach Sugg")
    status: Tuple[str, ...] = ("Process Status",)


@dataclass(frozen=True)
class ProfileColumns:
    """Fixed header layout of the LinkedIn profile sheet."""
    sheet_name: str = "Profiles"
    headers: Tuple[str, ...] = (
        "Name", "LinkedIn URL", "Title", "About Profile",
        "Email Subject", "Email Content", "Batch Number", "Status",
    )


# ────────────────────────────────────────────────────────────────
# Application config record
# ────────────────────────────────────────────────────────────────

@dataclass
class AppConfig:
    """Everything a workflow needs, resolved once from the environment."""

    openai: ProviderConfig
    anthropic: ProviderConfig
    perplexity: ProviderConfig

    companies: CompanyColumns = field(default_factory=CompanyColumns)
    matrix: MatrixLayout = field(default_factory=MatrixLayout)
    contacts: ContactColumns = field(default_factory=ContactColumns)
    profiles: ProfileColumns = field(default_factory=ProfileColumns)
    log_sheet_name: str = "ProcessLog"

    workbook_path: Path = BASE_DIR / "workbook.xlsx"
    checkpoint_path: Path = BASE_DIR / ".collabsheet_checkpoint.json"

    # Pacing
    rate_limit_delay: float = 1.0  # seconds after each attempted company / pair
    row_delay: float = 2.0  # seconds after each contact / profile

    # Retry
    retry_max_attempts: int = 3
    retry_base_delay: float = 2.0

    # Time boxing
    soft_deadline_seconds: float = HOST_TIME_LIMIT * SOFT_DEADLINE_RATIO
    deadline_check_every: int = 10

    # Profile batches
    profile_batch_size: int = 5
    discovery_sample_size: int = 5

    probability_start: Tuple[int, int] = DEFAULT_PROBABILITY_START

    # Per-workflow model overrides (provider default model otherwise)
    contact_outreach_model: str = "claude-3-7-sonnet-20250219"
    profile_outreach_model: str = "gpt-4o"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """Create config from environment variables."""
        env = os.environ if env is None else env

        def _float(name: str, default: float) -> float:
            raw = env.get(name)
            if raw in (None, ""):
                return default
            try:
                return float(raw)
            except ValueError:
                raise ConfigurationError(f"{name} must be a number, got {raw!r}")

        def _int(name: str, default: int) -> int:
            raw = env.get(name)
            if raw in (None, ""):
                return default
            try:
                return int(raw)
            except ValueError:
                raise ConfigurationError(f"{name} must be an integer, got {raw!r}")

        openai = ProviderConfig(
            kind=ProviderKind.OPENAI,
            api_key=env.get("OPENAI_API_KEY", ""),
            model=env.get("OPENAI_MODEL") or "o3-mini",
            base_url=env.get("OPENAI_BASE_URL") or "https://api.openai.com/v1",
        )
        anthropic = ProviderConfig(
            kind=ProviderKind.ANTHROPIC,
            api_key=env.get("ANTHROPIC_API_KEY", ""),
            model=env.get("ANTHROPIC_MODEL") or "claude-3-5-sonnet-20241022",
            base_url=env.get("ANTHROPIC_BASE_URL") or "https://api.anthropic.com",
            api_version=env.get("ANTHROPIC_VERSION") or "2023-06-01",
        )
        perplexity = ProviderConfig(
            kind=ProviderKind.PERPLEXITY,
            api_key=env.get("PERPLEXITY_API_KEY", ""),
            model=env.get("PERPLEXITY_MODEL") or "sonar-pro",
            base_url=env.get("PERPLEXITY_BASE_URL") or "https://api.perplexity.ai",
        )

        config = cls(openai=openai, anthropic=anthropic, perplexity=perplexity)

        if env.get("WORKBOOK_PATH"):
            config.workbook_path = Path(env["WORKBOOK_PATH"])
        if env.get("CHECKPOINT_PATH"):
            config.checkpoint_path = Path(env["CHECKPOINT_PATH"])
        if env.get("LOG_SHEET_NAME"):
            config.log_sheet_name = env["LOG_SHEET_NAME"]

        config.rate_limit_delay = _float("RATE_LIMIT_DELAY", config.rate_limit_delay)
        config.row_delay = _float("ROW_DELAY", config.row_delay)
        config.retry_max_attempts = _int("RETRY_MAX_ATTEMPTS", config.retry_max_attempts)
        config.retry_base_delay = _float("RETRY_BASE_DELAY", config.retry_base_delay)
        config.soft_deadline_seconds = _float("RUN_SOFT_DEADLINE", config.soft_deadline_seconds)
        config.deadline_check_every = _int("DEADLINE_CHECK_EVERY", config.deadline_check_every)
        config.profile_batch_size = _int("PROFILE_BATCH_SIZE", config.profile_batch_size)
        config.discovery_sample_size = _int("DISCOVERY_SAMPLE_SIZE", config.discovery_sample_size)
        config.probability_start = (
            _int("PROBABILITY_START_ROW", DEFAULT_PROBABILITY_START[0]),
            _int("PROBABILITY_START_COL", DEFAULT_PROBABILITY_START[1]),
        )

        config.contact_outreach_model = env.get("CONTACT_OUTREACH_MODEL") or config.contact_outreach_model
        config.profile_outreach_model = env.get("PROFILE_OUTREACH_MODEL") or config.profile_outreach_model

        if config.soft_deadline_seconds >= HOST_TIME_LIMIT:
            raise ConfigurationError(
                f"RUN_SOFT_DEADLINE ({config.soft_deadline_seconds}s) must stay below "
                f"the host limit of {HOST_TIME_LIMIT}s"
            )
        if config.retry_max_attempts < 1:
            raise ConfigurationError("RETRY_MAX_ATTEMPTS must be at least 1")

        return config

    def provider(self, kind: ProviderKind) -> ProviderConfig:
        """Return the provider config for ``kind``, failing if it has no key."""
        provider = {
            ProviderKind.OPENAI: self.openai,
            ProviderKind.ANTHROPIC: self.anthropic,
            ProviderKind.PERPLEXITY: self.perplexity,
        }[kind]
        if not provider.api_key:
            raise ConfigurationError(
                f"{kind.value} API key is not configured "
                f"(set {kind.value.upper()}_API_KEY in .env)"
            )
        return provider
