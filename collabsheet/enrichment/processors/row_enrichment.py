"""
Batch row processor with optional discovery of new rows.

Existing rows go first; rows whose processed marker is set are skipped
without looking at individual output fields. If the batch still has room
after that, the task is asked for related rows seeded from the most recent
entries, new ones (by case-insensitive identity key) are appended to the
sheet and processed in the same pass.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

from collabsheet.enrichment.cell_store import Sheet
from collabsheet.enrichment.exceptions import (
    ConfigurationError,
    EnrichmentError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class RowTask:
    """
    Per-workflow hooks for ``RowEnrichmentEngine``.

    ``prepare`` turns raw row values into whatever ``enrich`` needs and
    raises ValidationError for rows that should be skipped. ``enrich`` does
    the LLM work; ``on_*`` hooks write status back to the sheet.
    """

    name = "Row Enrichment"
    width = 0  # columns to read per row; 0 means the sheet's used width

    def is_processed(self, values: List[Any]) -> bool:
        return False

    def prepare(self, row: int, values: List[Any]) -> Any:
        return values

    def enrich(self, row: int, context: Any) -> Any:
        raise NotImplementedError

    def on_processing(self, row: int, context: Any) -> None:
        pass

    def on_completed(self, row: int, context: Any, result: Any) -> None:
        pass

    def on_error(self, row: int, error: Exception) -> None:
        pass

    def on_skipped(self, row: int, error: ValidationError) -> None:
        pass

    # Discovery (optional) ---------------------------------------------

    supports_discovery = False

    def identity_key(self, values: List[Any]) -> Optional[str]:
        return None

    def is_seed(self, values: List[Any]) -> bool:
        return False

    def discover(self, seed: List[Any]) -> List[List[Any]]:
        return []


@dataclass
class RowRunSummary:
    success: int = 0
    skipped: int = 0
    errors: int = 0
    discovered: int = 0

    def __str__(self):
        line = f"Success: {self.success}, Skipped: {self.skipped}, Errors: {self.errors}"
        if self.discovered:
            line += f", Discovered: {self.discovered}"
        return line


class RowEnrichmentEngine:
    def __init__(
        self,
        sheet: Sheet,
        task: RowTask,
        *,
        first_data_row: int = 2,
        batch_size: Optional[int] = None,
        discovery_sample_size: int = 5,
        delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.sheet = sheet
        self.task = task
        self.first_row = first_data_row
        self.batch_size = batch_size
        self.discovery_sample_size = discovery_sample_size
        self.delay = delay
        self.sleep = sleep

    def _width(self) -> int:
        return self.task.width or self.sheet.last_column()

    def _batch_full(self, summary: RowRunSummary) -> bool:
        return self.batch_size is not None and summary.success >= self.batch_size

    def run(self, rows: Optional[Iterable[int]] = None) -> RowRunSummary:
        """Process ``rows`` (default: every data row), then discover if room remains."""
        summary = RowRunSummary()
        width = self._width()
        if rows is None:
            rows = range(self.first_row, self.sheet.last_row() + 1)

        for row in rows:
            if self._batch_full(summary):
                logger.info(f"Batch of {self.batch_size} is full")
                break
            if row < self.first_row:
                logger.info(f"Skipping header row {row}")
                continue
            values = self.sheet.read_row(row, width)
            if self.task.is_processed(values):
                summary.skipped += 1
                logger.debug(f"Skipping row {row}: already processed")
                continue
            self._process(row, values, summary)

        if self.task.supports_discovery and self.batch_size and not self._batch_full(summary):
            self._discover(summary, width)

        logger.info(f"{self.task.name} completed! {summary}")
        return summary

    def _process(self, row: int, values: List[Any], summary: RowRunSummary) -> None:
        try:
            context = self.task.prepare(row, values)
        except ValidationError as e:
            summary.skipped += 1
            logger.warning(f"Skipping row {row}: {e}")
            self.task.on_skipped(row, e)
            self.sheet.flush()
            return
        except ConfigurationError:
            raise
        except EnrichmentError as e:
            summary.errors += 1
            logger.error(f"Row {row} rejected: {e}")
            self.task.on_error(row, e)
            self.sheet.flush()
            return

        self.task.on_processing(row, context)
        self.sheet.flush()
        try:
            result = self.task.enrich(row, context)
            self.task.on_completed(row, context, result)
            summary.success += 1
            logger.info(f"Row {row} completed")
        except ConfigurationError:
            raise
        except EnrichmentError as e:
            summary.errors += 1
            logger.error(f"Error processing row {row}: {e}")
            self.task.on_error(row, e)
        self.sheet.flush()
        self.sleep(self.delay)

    def _discover(self, summary: RowRunSummary, width: int) -> None:
        remaining = self.batch_size - summary.success
        last = self.sheet.last_row()
        existing = []
        if last >= self.first_row:
            existing = self.sheet.read_region(self.first_row, 1, last - self.first_row + 1, width)

        seen = set()
        for values in existing:
            key = self.task.identity_key(values)
            if key:
                seen.add(key.lower())
        seeds = [values for values in existing if self.task.is_seed(values)]
        seeds = seeds[-self.discovery_sample_size:] if self.discovery_sample_size else []
        logger.info(f"Discovering new rows from {len(seeds)} seeds, {remaining} slots remaining")

        for seed in seeds:
            if remaining <= 0:
                break
            try:
                candidates = self.task.discover(seed)
            except ConfigurationError:
                raise
            except EnrichmentError as e:
                logger.warning(f"Discovery from {self.task.identity_key(seed)} failed: {e}")
                continue

            fresh = []
            for candidate in candidates:
                key = self.task.identity_key(candidate)
                if not key or key.lower() in seen:
                    continue
                seen.add(key.lower())
                fresh.append(candidate)
                if len(fresh) >= remaining:
                    break
            if not fresh:
                continue

            added_rows = [self.sheet.append_row(values) for values in fresh]
            self.sheet.flush()
            remaining -= len(fresh)
            summary.discovered += len(fresh)
            logger.info(f"Added {len(fresh)} new rows from {self.task.identity_key(seed)}")

            for row, values in zip(added_rows, fresh):
                self._process(row, values, summary)
