"""
Contact enrichment.

The contacts sheet's ``Name`` cell holds the contact name and email on
two lines. For each selected row the company is taken from the email
domain, then three LLM calls fill the row: LinkedIn-style background
(Perplexity), other decision makers at the company (Perplexity) and
outreach suggestions (Anthropic). Progress shows in the status column.
"""

import logging
import re
import time
from dataclasses import dataclass
from typing import Callable, Optional

from collabsheet.enrichment.cell_store import Sheet, WorkbookStore, is_blank
from collabsheet.enrichment.entities import CellStyle, ProcessingState
from collabsheet.enrichment.exceptions import (
    ConfigurationError,
    EnrichmentError,
    ValidationError,
)
from collabsheet.enrichment.llm_client import LlmClient, ProviderConfig, ProviderKind
from collabsheet.enrichment.process_log import log_event
from collabsheet.enrichment.processors.row_enrichment import (
    RowEnrichmentEngine,
    RowRunSummary,
    RowTask,
)
from collabsheet.enrichment.retry_policy import RetryPolicy
from config.settings import AppConfig, ContactColumns

logger = logging.getLogger(__name__)

PROCESS = "Contact Enrichment"

STATUS_BACKGROUNDS = {
    ProcessingState.SKIPPED: "#D9D9D9",
    ProcessingState.PROCESSING: "#FCE5CD",
    ProcessingState.COMPLETED: "#D9EAD3",
    ProcessingState.ERROR: "#F4CCCC",
}

RESEARCH_SYSTEM_PROMPT = (
    "You are a helpful AI assistant that provides accurate, detailed information. "
    "Focus on professional details and factual information."
)

LINKEDIN_PROMPT = (
    "Find detailed professional information about {name} who works at {company}. Include their "
    "current role, years at the company, previous experience, education, skills, and any notable "
    "projects or achievements. Focus on information that would be available on LinkedIn or "
    "similar professional profiles."
)

CONNECTIONS_PROMPT = (
    "Find 3-5 key decision-makers or team leaders at {company} who might be connected to "
    "customer experience, digital transformation, or feedback management (excluding {name}). "
    "For each person, provide their name, role, and brief background that makes them relevant "
    "for a CX AI platform like zenloop."
)

OUTREACH_PROMPT = """
You are a B2B sales expert specialized in AI and customer experience platforms.
I need to reach out to {name} at {company}.

Here's what I know about them:
{linkedin}

Other potential contacts at the company include:
{connections}

Based on this information, provide concise, personalized outreach suggestions for introducing zenloop, an AI-based customer experience platform. Include:

1. A compelling subject line for an email
2. A brief introduction that shows I've done my homework
3. A value proposition specifically tailored to their role and company
4. A clear, low-pressure call-to-action

Keep the suggestions action-oriented and focused on how zenloop can solve specific problems they might be facing with customer feedback.
"""


class ContactSkipped(ValidationError):
    """Row cannot be processed; ``status`` is what the status column shows."""

    def __init__(self, message: str, status: str):
        super().__init__(message)
        self.status = status


class InvalidEmailError(EnrichmentError):
    pass


@dataclass
class Contact:
    name: str
    email: str
    company: str


def parse_name_cell(value) -> Contact:
    """Split a two-line ``name\\nemail`` cell and derive the company from the domain."""
    lines = [line.strip() for line in re.split(r"\r?\n", str(value or "")) if line.strip()]
    if len(lines) < 2:
        raise ContactSkipped(
            "Name cell doesn't contain both name and email (separated by line break)",
            "SKIPPED: Format error",
        )
    name, email = lines[0], lines[1]
    if not name or not email:
        raise ContactSkipped("Missing name or email", "SKIPPED: Missing data")

    _, _, domain = email.partition("@")
    company = domain.split(".")[0].strip()
    if not company:
        raise InvalidEmailError(f"Invalid email format: {email}")
    return Contact(name=name, email=email, company=company)


class ContactTask(RowTask):
    name = PROCESS

    def __init__(self, sheet: Sheet, columns: ContactColumns, llm: LlmClient,
                 research: ProviderConfig, writer: ProviderConfig, retry: RetryPolicy,
                 outreach_model: Optional[str] = None):
        self.sheet = sheet
        self.llm = llm
        self.research = research
        self.writer = writer
        self.retry = retry
        self.outreach_model = outreach_model

        self.name_col = sheet.find_column(columns.name)
        if self.name_col is None:
            raise ConfigurationError(f"Required '{columns.name}' column not found.")
        self.linkedin_col = sheet.find_column(*columns.linkedin)
        self.connections_col = sheet.find_column(*columns.connections)
        self.outreach_col = sheet.find_column(*columns.outreach)
        self.status_col = sheet.find_column(*columns.status)
        self.width = len(sheet.headers())
        logger.info(
            f"Column indices - Name: {self.name_col}, LinkedIn: {self.linkedin_col}, "
            f"Connections: {self.connections_col}, Outreach: {self.outreach_col}, "
            f"Status: {self.status_col}"
        )

    def _set_status(self, row: int, text: str, state: ProcessingState) -> None:
        if self.status_col is None:
            return
        self.sheet.write_cell(row, self.status_col, text)
        self.sheet.set_cell_style(row, self.status_col, CellStyle(background=STATUS_BACKGROUNDS[state]))

    def _write(self, row: int, col: Optional[int], value: str) -> None:
        if col is not None:
            self.sheet.write_cell(row, col, value)

    def _ask(self, provider: ProviderConfig, system_prompt: str, prompt: str, params=None) -> str:
        return self.retry.run(lambda: self.llm.complete(provider, system_prompt, prompt, params))

    def is_processed(self, values):
        if self.status_col is None:
            return False
        return str(values[self.status_col - 1]).strip() == "COMPLETED"

    def prepare(self, row, values):
        contact = parse_name_cell(values[self.name_col - 1])
        logger.info(f"Processing contact at row {row}: {contact.name} ({contact.email})")
        return contact

    def on_processing(self, row, contact):
        self._set_status(row, "PROCESSING", ProcessingState.PROCESSING)

    def enrich(self, row, contact: Contact):
        logger.info(f"Fetching LinkedIn info for {contact.name} at {contact.company}")
        linkedin = self._ask(
            self.research, RESEARCH_SYSTEM_PROMPT,
            LINKEDIN_PROMPT.format(name=contact.name, company=contact.company),
            {"max_tokens": 2000},
        )
        self._write(row, self.linkedin_col, linkedin)

        logger.info(f"Finding potential connections at {contact.company}")
        connections = self._ask(
            self.research, RESEARCH_SYSTEM_PROMPT,
            CONNECTIONS_PROMPT.format(name=contact.name, company=contact.company),
            {"max_tokens": 2000},
        )
        self._write(row, self.connections_col, connections)

        logger.info(f"Generating outreach suggestions for {contact.name}")
        outreach = self._ask(
            self.writer, "",
            OUTREACH_PROMPT.format(
                name=contact.name, company=contact.company,
                linkedin=linkedin, connections=connections,
            ),
            {"model": self.outreach_model, "max_tokens": 800},
        )
        self._write(row, self.outreach_col, outreach)
        return outreach

    def on_completed(self, row, contact, result):
        self._set_status(row, "COMPLETED", ProcessingState.COMPLETED)
        log_event(logger, PROCESS, "Success", f"Enriched {contact.name} at {contact.company}")

    def on_error(self, row, error):
        if isinstance(error, InvalidEmailError):
            self._set_status(row, "ERROR: Invalid email format", ProcessingState.ERROR)
        else:
            self._write(row, self.linkedin_col, f"Error: {error}")
            self._set_status(row, "ERROR: Processing failed", ProcessingState.ERROR)
        log_event(logger, PROCESS, "Error", f"Row {row}: {error}", logging.ERROR)

    def on_skipped(self, row, error):
        status = getattr(error, "status", "SKIPPED: Missing data")
        self._set_status(row, status, ProcessingState.SKIPPED)


def enrich_contacts(
    workbook: WorkbookStore,
    config: AppConfig,
    llm: LlmClient,
    retry: RetryPolicy,
    start_row: int = 2,
    num_rows: Optional[int] = None,
    sheet_name: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RowRunSummary:
    """Enrich ``num_rows`` contacts starting at ``start_row`` (default: to the end)."""
    sheet = workbook.get_sheet(sheet_name or config.contacts.sheet_name)
    if sheet.last_row() <= 1:
        logger.error("Sheet is empty or only has headers. Please add contact data.")
        return RowRunSummary()

    task = ContactTask(
        sheet,
        config.contacts,
        llm,
        config.provider(ProviderKind.PERPLEXITY),
        config.provider(ProviderKind.ANTHROPIC),
        retry,
        outreach_model=config.contact_outreach_model,
    )
    if num_rows is None:
        num_rows = sheet.last_row() - start_row + 1
    if start_row < 2:
        logger.warning("Selection includes header row. Will skip header row in processing.")
    logger.info(f"Selected rows {start_row} to {start_row + num_rows - 1} for processing")

    engine = RowEnrichmentEngine(sheet, task, delay=config.row_delay, sleep=sleep)
    summary = engine.run(range(start_row, start_row + num_rows))
    log_event(logger, PROCESS, "Completed", f"Contact enrichment completed! {summary}")
    return summary
