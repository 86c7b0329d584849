"""
Collaboration matrix workflows.

Two passes over the same symmetric matrix sheet:

- narrative: an Anthropic-written collaboration opportunity per pair
- probability: an OpenAI score (0-100) and reasoning per pair, shown as a
  tier background plus a cell note; only pairs that already have a
  narrative are scored

Each pass keeps its own checkpoint namespace so both are resumable.
"""

import logging
import time
from typing import Callable, Dict, Optional

from collabsheet.enrichment.cell_store import WorkbookStore, is_blank
from collabsheet.enrichment.checkpoint import Checkpoint
from collabsheet.enrichment.entities import AnalysisResult, Entity
from collabsheet.enrichment.llm_client import LlmClient, ProviderConfig, ProviderKind
from collabsheet.enrichment.processors.pair_matrix import (
    MatrixRunSummary,
    PairAnalysis,
    PairMatrixEngine,
)
from collabsheet.enrichment.response_extractor import extract_probability
from collabsheet.enrichment.retry_policy import RetryPolicy
from collabsheet.workflows.company_info import load_companies
from config.settings import AppConfig

logger = logging.getLogger(__name__)

COLLABORATION_NAMESPACE = "collaboration"
PROBABILITY_NAMESPACE = "probability"
NAMESPACES = (COLLABORATION_NAMESPACE, PROBABILITY_NAMESPACE)

NOT_PROVIDED = "Not provided"
PROBABILITY_NOTE_PREFIX = "Probability Score:"

NARRATIVE_SYSTEM_PROMPT = (
    "You are a business strategy consultant specializing in identifying collaboration "
    "opportunities between companies. Analyze the provided company information and suggest "
    "specific, actionable collaboration opportunities. Keep the response under 100 words and "
    "focus on the most impactful opportunity."
)

NARRATIVE_USER_PROMPT = """Analyze collaboration opportunities between these companies. Focus on their products and where there can be easy wins such as cross and upselling opportunities:

{company_a}

{company_b}

What are the most promising collaboration opportunities between these companies? Define a roadmap and a potential pitch."""

PROBABILITY_SYSTEM_PROMPT = (
    "You are a business and marketing strategy expert. Analyze collaboration potential between "
    "companies and provide: 1) A probability score (0-100), and 2) A brief explanation of the "
    "score. Keep responses concise."
)

PROBABILITY_USER_PROMPT = """Analyze the probability of successful collaboration between these companies:

{company_a}

{company_b}

Proposed Collaboration:
{narrative}

Provide:
1. A probability score (0-100) for collaboration success
2. A brief explanation (max 100 words) of the score

Consider:
- Market alignment
- Product complementarity
- Target audience overlap
- Technical feasibility
- Potential conflicts
- Market timing

Format your response as:
Score: [number]
Reasoning: [explanation]"""


def describe_company(label: str, entity: Entity) -> str:
    return (
        f"{label}: {entity.key}\n"
        f"Domain: {entity.get('website', NOT_PROVIDED)}\n"
        f"Business Overview: {entity.get('businessOverview', NOT_PROVIDED)}\n"
        f"Target Audience: {entity.get('targetAudience', NOT_PROVIDED)}\n"
        f"Products: {entity.get('products', NOT_PROVIDED)}"
    )


class CollaborationAnalysis(PairAnalysis):
    """Narrative pass: one short collaboration pitch per pair."""

    name = "Collaboration Analysis"

    def __init__(self, llm: LlmClient, provider: ProviderConfig, retry: RetryPolicy):
        self.llm = llm
        self.provider = provider
        self.retry = retry

    def analyze(self, a, b, existing_value):
        user_prompt = NARRATIVE_USER_PROMPT.format(
            company_a=describe_company("Company 1", a),
            company_b=describe_company("Company 2", b),
        )
        text = self.retry.run(lambda: self.llm.complete(
            self.provider, NARRATIVE_SYSTEM_PROMPT, user_prompt,
            {"temperature": 0.7, "max_tokens": 8096},
        ))
        return AnalysisResult(text=text.strip())


class ProbabilityAnalysis(PairAnalysis):
    """Probability pass: score and reasoning for pairs that have a narrative."""

    name = "Probability Analysis"
    not_ready_reason = "no collaboration data"

    def __init__(self, llm: LlmClient, provider: ProviderConfig, retry: RetryPolicy):
        self.llm = llm
        self.provider = provider
        self.retry = retry

    def is_complete(self, value, style):
        return bool(style.note) and style.note.startswith(PROBABILITY_NOTE_PREFIX)

    def is_ready(self, value):
        return not is_blank(value)

    def analyze(self, a, b, existing_value):
        user_prompt = PROBABILITY_USER_PROMPT.format(
            company_a=describe_company("Company 1", a),
            company_b=describe_company("Company 2", b),
            narrative=existing_value,
        )
        text = self.retry.run(lambda: self.llm.complete(
            self.provider, PROBABILITY_SYSTEM_PROMPT, user_prompt,
        ))
        return extract_probability(text)


def build_matrix_engine(
    workbook: WorkbookStore,
    config: AppConfig,
    analysis: PairAnalysis,
    checkpoint: Checkpoint,
    default_start=None,
    companies: Optional[Dict[str, Entity]] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> PairMatrixEngine:
    matrix = workbook.get_sheet(config.matrix.sheet_name)
    if companies is None:
        companies = load_companies(workbook.get_sheet(config.companies.sheet_name), config.companies)

    width = matrix.last_column() - config.matrix.first_data_col + 1
    if width > 0:
        headers = matrix.read_region(config.matrix.header_row, config.matrix.first_data_col, 1, width)[0]
        for name in headers:
            if not is_blank(name) and str(name).strip() not in companies:
                logger.warning(f"Matrix company {str(name).strip()} not found in company list")

    return PairMatrixEngine(
        matrix,
        analysis,
        checkpoint,
        companies,
        first_data_row=config.matrix.first_data_row,
        first_data_col=config.matrix.first_data_col,
        header_row=config.matrix.header_row,
        header_col=config.matrix.header_col,
        delay=config.rate_limit_delay,
        soft_deadline=config.soft_deadline_seconds,
        check_every=config.deadline_check_every,
        default_start=default_start,
        clock=clock,
        sleep=sleep,
    )


def analyze_collaborations(
    workbook: WorkbookStore,
    config: AppConfig,
    llm: LlmClient,
    store,
    retry: RetryPolicy,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> MatrixRunSummary:
    analysis = CollaborationAnalysis(llm, config.provider(ProviderKind.ANTHROPIC), retry)
    engine = build_matrix_engine(
        workbook, config, analysis, Checkpoint(store, COLLABORATION_NAMESPACE),
        clock=clock, sleep=sleep,
    )
    return engine.run()


def analyze_probability(
    workbook: WorkbookStore,
    config: AppConfig,
    llm: LlmClient,
    store,
    retry: RetryPolicy,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> MatrixRunSummary:
    analysis = ProbabilityAnalysis(llm, config.provider(ProviderKind.OPENAI), retry)
    engine = build_matrix_engine(
        workbook, config, analysis, Checkpoint(store, PROBABILITY_NAMESPACE),
        default_start=config.probability_start, clock=clock, sleep=sleep,
    )
    return engine.run()


def reset_progress(store, workflow: Optional[str] = None) -> None:
    """Clear the resume checkpoint of one workflow, or of both."""
    for namespace in ([workflow] if workflow else NAMESPACES):
        Checkpoint(store, namespace).clear()
