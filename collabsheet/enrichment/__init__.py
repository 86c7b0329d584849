"""
Enrichment engines and their collaborators

Provides:
- PairMatrixEngine: resumable, rate-limited symmetric matrix processing
- RowEnrichmentEngine: batch row processing with discovery of new rows
- LlmClient: one completion call over OpenAI, Anthropic and Perplexity
- Response extraction: JSON objects and Score/Reasoning labeled lines
- CellStore: in-memory and openpyxl-backed workbooks
- Checkpoint: persisted (row, col) resume cursor
"""

from .cell_store import (
    InMemorySheet,
    InMemoryWorkbook,
    Sheet,
    WorkbookStore,
    XlsxSheet,
    XlsxWorkbook,
    is_blank,
)

from .checkpoint import (
    Checkpoint,
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
)

from .entities import (
    ERROR_BACKGROUND,
    AnalysisResult,
    CellStyle,
    Entity,
    PairKey,
    ProcessingState,
    Tier,
)

from .exceptions import (
    ApiError,
    ConfigurationError,
    EnrichmentError,
    ExtractionError,
    RetryExhaustedError,
    TransportError,
    ValidationError,
)

from .llm_client import LlmClient, ProviderConfig, ProviderKind

from .processors.pair_matrix import MatrixRunSummary, PairAnalysis, PairMatrixEngine
from .processors.row_enrichment import RowEnrichmentEngine, RowRunSummary, RowTask

from .response_extractor import (
    extract_json,
    extract_model,
    extract_probability,
    extract_profiles,
    extract_score_and_reasoning,
)

from .retry_policy import RetryPolicy, with_retries

__all__ = [
    'InMemorySheet',
    'InMemoryWorkbook',
    'Sheet',
    'WorkbookStore',
    'XlsxSheet',
    'XlsxWorkbook',
    'is_blank',
    'Checkpoint',
    'JsonFileStore',
    'KeyValueStore',
    'MemoryStore',
    'ERROR_BACKGROUND',
    'AnalysisResult',
    'CellStyle',
    'Entity',
    'PairKey',
    'ProcessingState',
    'Tier',
    'ApiError',
    'ConfigurationError',
    'EnrichmentError',
    'ExtractionError',
    'RetryExhaustedError',
    'TransportError',
    'ValidationError',
    'LlmClient',
    'ProviderConfig',
    'ProviderKind',
    'MatrixRunSummary',
    'PairAnalysis',
    'PairMatrixEngine',
    'RowEnrichmentEngine',
    'RowRunSummary',
    'RowTask',
    'extract_json',
    'extract_model',
    'extract_probability',
    'extract_profiles',
    'extract_score_and_reasoning',
    'RetryPolicy',
    'with_retries',
]
