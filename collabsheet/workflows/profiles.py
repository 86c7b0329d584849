"""
LinkedIn profile batches.

Each run gets the next batch number. Existing profiles with a name and
URL that were never processed are analyzed first; if the batch still has
room, related profiles are discovered from the most recent entries,
appended as ``Pending`` and analyzed in the same run.

Discovered rows can seed later discovery, so the sheet grows with every
run that has spare capacity. Only the per-run batch size bounds it.
"""

import logging
import time
from typing import Callable, List

from collabsheet.enrichment.cell_store import Sheet, WorkbookStore, is_blank
from collabsheet.enrichment.exceptions import ValidationError
from collabsheet.enrichment.llm_client import LlmClient, ProviderConfig, ProviderKind
from collabsheet.enrichment.process_log import log_event
from collabsheet.enrichment.processors.row_enrichment import (
    RowEnrichmentEngine,
    RowRunSummary,
    RowTask,
)
from collabsheet.enrichment.response_extractor import extract_model, extract_profiles
from collabsheet.enrichment.retry_policy import RetryPolicy
from collabsheet.enrichment.schemas import ProfileOutreach
from config.settings import AppConfig

logger = logging.getLogger(__name__)

PROCESS = "Profile Batch"

# Column positions (1-based) in the fixed profile layout
NAME, URL, TITLE, ABOUT, SUBJECT, CONTENT, BATCH, STATUS = range(1, 9)

ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert at creating personalized B2B outreach content. "
    "Focus on value proposition and relevant experience."
)

ANALYSIS_PROMPT = """
Research this LinkedIn profile: {name} ({url})

Create a personalized outreach about Protaige, an AI-driven marketing automation platform. Key benefits:
- Complete brand voice and story capture/management
- Persona creation and management
- End-to-end campaign creation (strategy to content)

Keep the email funny and quirky.

YOU MUST RESPOND WITH VALID JSON ONLY. Do not include any explanatory text.
The JSON must have exactly these fields:
{{
  "title": "their current title",
  "aboutProfile": "key insights about their background (max 100 words)",
  "emailSubject": "compelling personalized subject line",
  "emailContent": "professional personalized email (2-3 paragraphs)"
}}
"""

DISCOVERY_SYSTEM_PROMPT = (
    "You are a thorough professional profile researcher. "
    "Focus on relevant experience and connections."
)

DISCOVERY_PROMPT = """
Research this LinkedIn profile: {name} ({url})
Find 5 similar profiles in their network who might be interested in AI marketing automation. Focus on marketing directors, CMOs etc.

Format the response exactly like this:
PROFILES_START
name: Full Name
linkedin: Profile URL
PROFILES_END
"""


def _text(value) -> str:
    return "" if is_blank(value) else str(value).strip()


def next_batch_number(sheet: Sheet) -> int:
    """One more than the largest numeric value in the batch column."""
    last = sheet.last_row()
    highest = 0
    if last >= 2:
        for (value,) in sheet.read_region(2, BATCH, last - 1, 1):
            try:
                highest = max(highest, int(float(value)))
            except (TypeError, ValueError):
                continue
    return highest + 1


class ProfileTask(RowTask):
    name = PROCESS
    width = STATUS
    supports_discovery = True

    def __init__(self, sheet: Sheet, batch_number: int, llm: LlmClient,
                 writer: ProviderConfig, researcher: ProviderConfig, retry: RetryPolicy,
                 writer_model: str = None):
        self.sheet = sheet
        self.batch_number = batch_number
        self.llm = llm
        self.writer = writer
        self.researcher = researcher
        self.retry = retry
        self.writer_model = writer_model

    def is_processed(self, values):
        return bool(_text(values[CONTENT - 1]) or _text(values[BATCH - 1]))

    def prepare(self, row, values):
        name, url = _text(values[NAME - 1]), _text(values[URL - 1])
        if not name or not url:
            raise ValidationError("Missing name or LinkedIn URL")
        return name, url

    def enrich(self, row, context):
        name, url = context
        logger.info(f"Analyzing profile for {name}")
        text = self.retry.run(lambda: self.llm.complete(
            self.writer, ANALYSIS_SYSTEM_PROMPT, ANALYSIS_PROMPT.format(name=name, url=url),
            {"model": self.writer_model, "response_format": {"type": "json_object"}},
        ))
        return extract_model(text, ProfileOutreach)

    def on_completed(self, row, context, result: ProfileOutreach):
        name, url = context
        self.sheet.write_row(row, [
            name, url, result.title, result.about_profile,
            result.email_subject, result.email_content,
            self.batch_number, "Completed",
        ])
        log_event(logger, PROCESS, "Success", f"Processed profile for {name}")

    def on_error(self, row, error):
        self.sheet.write_cell(row, STATUS, f"Error: {error}")
        log_event(logger, PROCESS, "Error", f"Row {row}: {error}", logging.ERROR)

    # Discovery

    def identity_key(self, values):
        return _text(values[URL - 1]) or None

    def is_seed(self, values):
        return bool(_text(values[NAME - 1]) and _text(values[URL - 1]))

    def discover(self, seed) -> List[List]:
        name, url = _text(seed[NAME - 1]), _text(seed[URL - 1])
        logger.info(f"Discovering related profiles for {name}")
        text = self.retry.run(lambda: self.llm.complete(
            self.researcher, DISCOVERY_SYSTEM_PROMPT, DISCOVERY_PROMPT.format(name=name, url=url),
        ))
        profiles = extract_profiles(text)
        logger.info(f"Found {len(profiles)} related profiles")
        return [
            [p.name, p.linkedin, "", "", "", "", self.batch_number, "Pending"]
            for p in profiles
        ]


def ensure_headers(sheet: Sheet, headers) -> None:
    if is_blank(sheet.read_cell(1, 1)):
        logger.info("Headers missing, adding them now...")
        sheet.write_row(1, list(headers))
        sheet.flush()


def process_profiles(
    workbook: WorkbookStore,
    config: AppConfig,
    llm: LlmClient,
    retry: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> RowRunSummary:
    sheet = workbook.get_or_create_sheet(config.profiles.sheet_name, config.profiles.headers)
    ensure_headers(sheet, config.profiles.headers)

    batch_number = next_batch_number(sheet)
    log_event(logger, PROCESS, "Started", f"Starting batch {batch_number}")

    task = ProfileTask(
        sheet,
        batch_number,
        llm,
        config.provider(ProviderKind.OPENAI),
        config.provider(ProviderKind.PERPLEXITY),
        retry,
        writer_model=config.profile_outreach_model,
    )
    engine = RowEnrichmentEngine(
        sheet,
        task,
        batch_size=config.profile_batch_size,
        discovery_sample_size=config.discovery_sample_size,
        delay=config.row_delay,
        sleep=sleep,
    )
    summary = engine.run()
    log_event(logger, PROCESS, "Completed", f"Batch {batch_number} complete! {summary}")
    return summary
