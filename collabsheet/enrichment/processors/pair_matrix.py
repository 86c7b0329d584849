"""
Resumable pairwise matrix processor.

Walks an N x N symmetric matrix of entities in row-major order from the
resume cursor, analyzes each unpopulated pair once (whichever of its two
cells is reached first), mirrors the result into both cells and stops on
its own before the host's run-time limit.

Resume model:
- The (row, col) cursor is checkpointed *before* each cell is touched.
- A run that reaches the end clears the checkpoint.
- A run that hits the soft deadline returns with the checkpoint left at the
  last attempted cell; the next run re-checks that cell and moves on.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from collabsheet.enrichment.cell_store import Sheet, is_blank
from collabsheet.enrichment.checkpoint import Checkpoint
from collabsheet.enrichment.entities import (
    ERROR_BACKGROUND,
    AnalysisResult,
    CellStyle,
    Entity,
    PairKey,
)
from collabsheet.enrichment.exceptions import (
    ConfigurationError,
    EnrichmentError,
    ValidationError,
)
from collabsheet.enrichment.process_log import log_event

logger = logging.getLogger(__name__)


class PairAnalysis:
    """
    Per-workflow behavior plugged into the engine.

    Subclasses override ``analyze`` and, where the default is wrong,
    the completeness / readiness checks.
    """

    name = "Pair Analysis"
    not_ready_reason = "not ready"

    def is_complete(self, value: Any, style: CellStyle) -> bool:
        """True when the cell already holds this analysis' output."""
        return not is_blank(value)

    def is_ready(self, value: Any) -> bool:
        """True when the pair has whatever input the analysis depends on."""
        return True

    def validate(self, key_a: str, a: Optional[Entity], key_b: str, b: Optional[Entity]) -> None:
        if a is None or b is None:
            raise ValidationError(
                f"Missing company information for {key_a if a is None else key_b}"
            )

    def analyze(self, a: Entity, b: Entity, existing_value: Any) -> AnalysisResult:
        raise NotImplementedError


@dataclass
class MatrixRunSummary:
    success: int = 0
    skipped: int = 0
    errors: int = 0
    attempted: int = 0
    paused: bool = False
    resume_at: Optional[Tuple[int, int]] = None

    def __str__(self):
        line = f"Success: {self.success}, Skipped: {self.skipped}, Errors: {self.errors}"
        if self.paused:
            line += f", Paused (resume from row {self.resume_at[0]}, column {self.resume_at[1]})"
        return line


class PairMatrixEngine:
    """
    Fill a symmetric matrix sheet pair by pair.

    The sheet holds entity names in ``header_row`` (starting at
    ``first_data_col``) and ``header_col`` (starting at ``first_data_row``);
    the data region begins at (first_data_row, first_data_col). The header
    row and column default to the ones just above and left of the data.
    Both header lists must name the same entities in the same order.
    """

    def __init__(
        self,
        sheet: Sheet,
        analysis: PairAnalysis,
        checkpoint: Checkpoint,
        entities: Dict[str, Entity],
        *,
        first_data_row: int = 2,
        first_data_col: int = 2,
        header_row: Optional[int] = None,
        header_col: Optional[int] = None,
        delay: float = 1.0,
        soft_deadline: float = 270.0,
        check_every: int = 10,
        default_start: Optional[Tuple[int, int]] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.sheet = sheet
        self.analysis = analysis
        self.checkpoint = checkpoint
        self.entities = entities
        self.first_row = first_data_row
        self.first_col = first_data_col
        self.header_row = header_row if header_row is not None else first_data_row - 1
        self.header_col = header_col if header_col is not None else first_data_col - 1
        self.delay = delay
        self.soft_deadline = soft_deadline
        self.check_every = max(1, check_every)
        self.default_start = default_start
        self.clock = clock
        self.sleep = sleep

    # ------------------------------------------------------------------

    def _header_names(self) -> Tuple[List[str], List[str]]:
        width = self.sheet.last_column() - self.first_col + 1
        height = self.sheet.last_row() - self.first_row + 1
        col_names = []
        if width > 0:
            col_names = [str(v).strip() for v in
                         self.sheet.read_region(self.header_row, self.first_col, 1, width)[0]]
        row_names = []
        if height > 0:
            row_names = [str(r[0]).strip() for r in
                         self.sheet.read_region(self.first_row, self.header_col, height, 1)]
        while col_names and not col_names[-1]:
            col_names.pop()
        while row_names and not row_names[-1]:
            row_names.pop()
        return row_names, col_names

    def _start(self) -> Tuple[int, int]:
        saved = self.checkpoint.load()
        if saved:
            logger.info(f"Resuming {self.analysis.name} from row {saved[0]}, column {saved[1]}")
            return saved
        return self.default_start or (self.first_row, self.first_col)

    def _mark_pair(self, cells, style: CellStyle) -> None:
        for r, c in cells:
            self.sheet.set_cell_style(r, c, style)

    # ------------------------------------------------------------------

    def run(self) -> MatrixRunSummary:
        row_names, col_names = self._header_names()
        if not col_names:
            raise ConfigurationError(f"Matrix sheet '{self.sheet.name}' has no entity headers")
        if row_names[:len(col_names)] != col_names:
            raise ConfigurationError(
                f"Row and column headers of '{self.sheet.name}' differ: "
                f"{row_names[:len(col_names)]} vs {col_names}"
            )
        n = len(col_names)
        last_row = self.first_row + n - 1
        last_col = self.first_col + n - 1
        total_pairs = n * (n - 1) // 2

        # One bulk read each; the snapshot only drives skip decisions.
        values = self.sheet.read_region(self.first_row, self.first_col, n, n)
        styles = self.sheet.read_styles(self.first_row, self.first_col, n, n)

        start_row, start_col = self._start()
        summary = MatrixRunSummary()
        started = self.clock()
        # index pairs already decided this run; the snapshot does not see our writes
        visited = set()
        name = self.analysis.name

        log_event(logger, name, "Started",
                  f"Starting from row {start_row}, column {start_col}; {total_pairs} pairs in matrix")

        for row in range(start_row, last_row + 1):
            col_from = start_col if row == start_row else self.first_col
            for col in range(max(col_from, self.first_col), last_col + 1):
                self.checkpoint.save(row, col)
                i, j = sorted((row - self.first_row, col - self.first_col))
                if i == j or (i, j) in visited:
                    continue
                visited.add((i, j))

                key_a, key_b = col_names[i], col_names[j]
                cells = ((self.first_row + i, self.first_col + j), (self.first_row + j, self.first_col + i))

                if (self.analysis.is_complete(values[i][j], styles[i][j])
                        or self.analysis.is_complete(values[j][i], styles[j][i])):
                    summary.skipped += 1
                    logger.debug(f"Skipping {key_a} & {key_b} (already analyzed)")
                    continue

                existing = values[i][j] if not is_blank(values[i][j]) else values[j][i]
                if not self.analysis.is_ready(existing):
                    summary.skipped += 1
                    logger.info(f"Skipping {key_a} & {key_b} ({self.analysis.not_ready_reason})")
                    continue

                entity_a, entity_b = self.entities.get(key_a), self.entities.get(key_b)
                try:
                    if key_a == key_b:
                        raise ValidationError(f"{key_a} appears more than once in the matrix headers")
                    self.analysis.validate(key_a, entity_a, key_b, entity_b)
                except ValidationError as e:
                    summary.skipped += 1
                    self._mark_pair(cells, CellStyle(note=f"Skipped: {e}"))
                    self.sheet.flush()
                    log_event(logger, name, "Skipped", f"{key_a} & {key_b}: {e}", logging.WARNING)
                    continue

                summary.attempted += 1
                logger.info(
                    f"Analyzing {PairKey.of(key_a, key_b)} "
                    f"({len(visited)}/{total_pairs} seen, Skipped: {summary.skipped})"
                )
                try:
                    result = self.analysis.analyze(entity_a, entity_b, existing)
                    self._write_result(cells, result)
                    summary.success += 1
                    detail = f"Completed {key_a} & {key_b}"
                    if result.is_scored:
                        detail += f" - Score: {result.score}%"
                    log_event(logger, name, "Success", detail)
                except ConfigurationError:
                    raise
                except EnrichmentError as e:
                    summary.errors += 1
                    self._mark_pair(cells, CellStyle(background=ERROR_BACKGROUND, note=f"Error: {e}"))
                    self.sheet.flush()
                    log_event(logger, name, "Error", f"Failed {key_a} & {key_b}: {e}", logging.ERROR)

                self.sleep(self.delay)

                if summary.attempted % self.check_every == 0:
                    elapsed = self.clock() - started
                    if elapsed > self.soft_deadline:
                        summary.paused = True
                        summary.resume_at = (row, col)
                        log_event(logger, name, "Paused",
                                  f"Time limit approaching after {elapsed:.0f}s. "
                                  f"Resume from: Column {col}, Row {row}")
                        return summary

        self.checkpoint.clear()
        log_event(logger, name, "Completed", f"{name} complete! {summary}")
        return summary

    def _write_result(self, cells, result: AnalysisResult) -> None:
        if result.text is not None:
            for r, c in cells:
                self.sheet.write_cell(r, c, result.text)
        if result.is_scored:
            style = CellStyle(background=result.tier.background, note=result.note())
        else:
            # clear any error marking left by an earlier failed attempt
            style = CellStyle(background="", note="")
        self._mark_pair(cells, style)
        self.sheet.flush()
