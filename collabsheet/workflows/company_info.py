"""
Company list population.

Fills businessOverview / targetAudience / products / pricing for every
company row that is missing any of them, using Perplexity research.
Also loads the list into ``Entity`` records for the matrix workflows.
"""

import logging
import time
from typing import Callable, Dict

from collabsheet.enrichment.cell_store import Sheet, WorkbookStore, is_blank
from collabsheet.enrichment.entities import ERROR_BACKGROUND, CellStyle, Entity
from collabsheet.enrichment.exceptions import ValidationError
from collabsheet.enrichment.llm_client import LlmClient, ProviderConfig, ProviderKind
from collabsheet.enrichment.process_log import log_event
from collabsheet.enrichment.processors.row_enrichment import (
    RowEnrichmentEngine,
    RowRunSummary,
    RowTask,
)
from collabsheet.enrichment.response_extractor import extract_model
from collabsheet.enrichment.retry_policy import RetryPolicy
from collabsheet.enrichment.schemas import CompanyProfile
from config.settings import AppConfig, CompanyColumns

logger = logging.getLogger(__name__)

PROCESS = "Company Info Population"

PROFILE_FIELDS = ("businessOverview", "targetAudience", "products", "pricing")

SYSTEM_PROMPT = (
    "You are a TOP MARKET RESEARCHER. Return ONLY a JSON object with the following "
    "structure, no other text: { \"businessOverview\": \"...\", \"targetAudience\": \"...\", "
    "\"products\": \"...\", \"pricing\": \"...\" }"
)

USER_PROMPT = (
    "Research and provide information about {name} (website: {website}) in the specified "
    "JSON format. Include ONLY the JSON object, no other text."
)


def _field_columns(columns: CompanyColumns) -> Dict[str, int]:
    return {
        "website": columns.website,
        "businessOverview": columns.business_overview,
        "targetAudience": columns.target_audience,
        "products": columns.products,
        "pricing": columns.pricing,
    }


def load_companies(sheet: Sheet, columns: CompanyColumns) -> Dict[str, Entity]:
    """Read the company list in one bulk read, keyed by company name."""
    last = sheet.last_row()
    if last < 2:
        return {}

    field_columns = _field_columns(columns)
    companies = {}
    for offset, values in enumerate(sheet.read_region(2, 1, last - 1, columns.width)):
        name = values[columns.name - 1]
        if is_blank(name):
            continue
        name = str(name).strip()
        fields = {
            field: "" if is_blank(values[col - 1]) else str(values[col - 1]).strip()
            for field, col in field_columns.items()
        }
        entity = Entity(key=name, fields=fields, row=offset + 2)
        missing = entity.missing(field_columns)
        if missing:
            logger.warning(f"Company {name} is missing: {', '.join(missing)}")
        companies[name] = entity

    logger.info(f"Loaded {len(companies)} companies from '{sheet.name}'")
    return companies


class CompanyInfoTask(RowTask):
    name = PROCESS

    def __init__(self, sheet: Sheet, columns: CompanyColumns, llm: LlmClient,
                 provider: ProviderConfig, retry: RetryPolicy):
        self.sheet = sheet
        self.columns = columns
        self.llm = llm
        self.provider = provider
        self.retry = retry
        self.width = columns.width
        self._profile_columns = [
            columns.business_overview, columns.target_audience, columns.products, columns.pricing,
        ]

    def is_processed(self, values):
        return all(not is_blank(values[col - 1]) for col in self._profile_columns)

    def prepare(self, row, values):
        name = values[self.columns.name - 1]
        if is_blank(name):
            raise ValidationError(f"Row {row} has no company name")
        website = values[self.columns.website - 1]
        return str(name).strip(), "" if is_blank(website) else str(website).strip()

    def enrich(self, row, context):
        name, website = context
        logger.info(f"Processing company: {name}")
        user_prompt = USER_PROMPT.format(name=name, website=website or "unknown")
        text = self.retry.run(
            lambda: self.llm.complete(self.provider, SYSTEM_PROMPT, user_prompt)
        )
        logger.debug(f"Raw response for {name}: {text[:500]}")
        return extract_model(text, CompanyProfile)

    def on_completed(self, row, context, result: CompanyProfile):
        self.sheet.write_cell(row, self.columns.business_overview, result.business_overview)
        self.sheet.write_cell(row, self.columns.target_audience, result.target_audience)
        self.sheet.write_cell(row, self.columns.products, result.products)
        self.sheet.write_cell(row, self.columns.pricing, result.pricing)
        self.sheet.set_cell_style(row, self.columns.business_overview, CellStyle(background=""))
        log_event(logger, PROCESS, "Success", f"Updated {context[0]}")

    def on_error(self, row, error):
        self.sheet.write_cell(
            row, self.columns.business_overview, f"Error processing: {error}. Please try again."
        )
        self.sheet.set_cell_style(
            row, self.columns.business_overview, CellStyle(background=ERROR_BACKGROUND)
        )
        log_event(logger, PROCESS, "Error", f"Row {row}: {error}", logging.ERROR)


def populate_companies(
    workbook: WorkbookStore,
    config: AppConfig,
    llm: LlmClient,
    retry: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> RowRunSummary:
    sheet = workbook.get_sheet(config.companies.sheet_name)
    task = CompanyInfoTask(
        sheet, config.companies, llm, config.provider(ProviderKind.PERPLEXITY), retry,
    )
    log_event(logger, PROCESS, "Started", f"Populating company info on '{sheet.name}'")
    engine = RowEnrichmentEngine(sheet, task, delay=config.rate_limit_delay, sleep=sleep)
    summary = engine.run()
    log_event(logger, PROCESS, "Completed", f"Completed! {summary}")
    return summary
