"""
Tests for PairMatrixEngine: symmetry, idempotence, resume, deadline
suspension and per-pair failure handling.
"""

import pytest

from collabsheet.enrichment.cell_store import InMemoryWorkbook
from collabsheet.enrichment.checkpoint import Checkpoint, MemoryStore
from collabsheet.enrichment.entities import (
    ERROR_BACKGROUND,
    AnalysisResult,
    CellStyle,
    Entity,
    Tier,
)
from collabsheet.enrichment.exceptions import (
    ConfigurationError,
    ExtractionError,
    RetryExhaustedError,
    TransportError,
)
from collabsheet.enrichment.processors.pair_matrix import PairAnalysis, PairMatrixEngine


# ── helpers ───────────────────────────────────────────────────────

class StubAnalysis(PairAnalysis):
    """Records every pair it is asked about and returns a fixed result."""

    name = "Stub Analysis"

    def __init__(self, text="Co-host a webinar", score=None, fail_on=()):
        self.text = text
        self.score = score
        self.fail_on = set(fail_on)
        self.calls = []

    def analyze(self, a, b, existing_value):
        self.calls.append((a.key, b.key))
        if (a.key, b.key) in self.fail_on:
            raise RetryExhaustedError(3, TransportError("timeout"))
        return AnalysisResult(text=self.text, score=self.score)


def names_for(n):
    return [f"Co{i:02d}" for i in range(n)]


def build(names, fill=None, analysis=None, store=None, clock=None, **kwargs):
    rows = [[""] + names]
    for i, name in enumerate(names):
        rows.append([name] + [fill(i, j) if fill else "" for j in range(len(names))])
    workbook = InMemoryWorkbook({"CollaborationMatrix": rows})
    sheet = workbook.get_sheet("CollaborationMatrix")
    entities = {name: Entity(key=name, fields={"website": f"{name}.example"}) for name in names}
    analysis = analysis or StubAnalysis()
    store = store if store is not None else MemoryStore()
    checkpoint = Checkpoint(store, "test")
    options = dict(delay=1.0, soft_deadline=270.0)
    if clock is not None:
        options.update(clock=clock, sleep=clock.sleep)
    options.update(kwargs)
    engine = PairMatrixEngine(sheet, analysis, checkpoint, entities, **options)
    return engine, sheet, analysis, checkpoint


# ── end to end ────────────────────────────────────────────────────

class TestThreeEntityRun:
    def test_all_off_diagonal_cells_filled_neutral(self, fake_clock):
        names = ["A", "B", "C"]
        engine, sheet, analysis, checkpoint = build(
            names, analysis=StubAnalysis(text="Joint bundle", score=55), clock=fake_clock,
        )

        summary = engine.run()

        assert summary.success == 3
        assert summary.errors == 0
        assert not summary.paused
        for r in range(2, 5):
            for c in range(2, 5):
                if r == c:
                    assert sheet.read_cell(r, c) == ""
                    assert sheet.get_cell_style(r, c) == CellStyle()
                else:
                    assert sheet.read_cell(r, c) == "Joint bundle"
                    style = sheet.get_cell_style(r, c)
                    assert style.background == Tier.NEUTRAL.background == "#fff2cc"
                    assert style.note.startswith("Probability Score: 55%")
        assert checkpoint.load() is None

    def test_each_pair_analyzed_once(self, fake_clock):
        engine, _, analysis, _ = build(["A", "B", "C"], clock=fake_clock)
        engine.run()
        assert analysis.calls == [("A", "B"), ("A", "C"), ("B", "C")]

    def test_rate_limit_pause_after_each_attempt(self, fake_clock):
        engine, _, _, _ = build(["A", "B", "C"], clock=fake_clock)
        engine.run()
        assert fake_clock.sleeps == [1.0, 1.0, 1.0]


# ── invariants ────────────────────────────────────────────────────

class TestSymmetry:
    @pytest.mark.parametrize("score, tier", [(85, Tier.FAVORABLE), (40, Tier.NEUTRAL), (12, Tier.UNFAVORABLE)])
    def test_mirrored_cells_match(self, fake_clock, score, tier):
        names = names_for(5)
        engine, sheet, _, _ = build(names, analysis=StubAnalysis(score=score), clock=fake_clock)
        engine.run()

        for i in range(5):
            for j in range(5):
                if i == j:
                    continue
                a, b = (2 + i, 2 + j), (2 + j, 2 + i)
                assert sheet.read_cell(*a) == sheet.read_cell(*b)
                assert sheet.get_cell_style(*a) == sheet.get_cell_style(*b)
                assert sheet.get_cell_style(*a).background == tier.background


class TestIdempotence:
    def test_fully_populated_matrix_makes_no_calls(self, fake_clock):
        names = names_for(4)
        engine, sheet, analysis, checkpoint = build(
            names, fill=lambda i, j: "" if i == j else f"existing {min(i, j)}-{max(i, j)}",
            clock=fake_clock,
        )
        before = [sheet.read_region(2, 2, 4, 4)]

        summary = engine.run()

        assert analysis.calls == []
        assert summary.skipped == 6
        assert sheet.writes == []
        assert [sheet.read_region(2, 2, 4, 4)] == before
        assert fake_clock.sleeps == []
        assert checkpoint.load() is None

    def test_pair_skipped_when_only_mirror_is_filled(self, fake_clock):
        # (B, A) holds a value but (A, B) does not
        engine, sheet, analysis, _ = build(
            ["A", "B"], fill=lambda i, j: "only lower" if (i, j) == (1, 0) else "", clock=fake_clock,
        )
        engine.run()
        assert analysis.calls == []
        assert sheet.read_cell(2, 3) == ""

    def test_second_run_is_a_no_op(self, fake_clock):
        engine, sheet, analysis, _ = build(["A", "B", "C"], clock=fake_clock)
        engine.run()
        analysis.calls.clear()

        engine.run()

        assert analysis.calls == []


# ── resume ────────────────────────────────────────────────────────

def done_before(row_index, col_index):
    """Fill for pairs a previous run finished before the (row, col) index cursor."""
    def fill(i, j):
        a, b = min(i, j), max(i, j)
        if a == b:
            return ""
        if a < row_index or (a == row_index and b < col_index):
            return "earlier run"
        return ""
    return fill


class TestResume:
    def test_starts_at_saved_cursor(self, fake_clock):
        names = names_for(20)
        store = MemoryStore()
        Checkpoint(store, "test").save(5, 9)
        engine, _, analysis, _ = build(names, fill=done_before(3, 7), store=store, clock=fake_clock)

        engine.run()

        # sheet row 5 / column 9 is names[3] x names[7]
        assert analysis.calls[0] == (names[3], names[7])
        earlier = {(names[3], names[j]) for j in range(4, 7)}
        earlier |= {(names[i], names[j]) for i in range(3) for j in range(i + 1, 20)}
        assert not earlier & set(analysis.calls)

    def test_resume_covers_rest_of_triangle(self, fake_clock):
        names = names_for(20)
        store = MemoryStore()
        Checkpoint(store, "test").save(5, 9)
        engine, _, analysis, checkpoint = build(names, fill=done_before(3, 7), store=store, clock=fake_clock)

        engine.run()

        remaining_in_row = 20 - 7  # columns names[7]..names[19]
        later_rows = sum(20 - i - 1 for i in range(4, 20))
        assert len(analysis.calls) == remaining_in_row + later_rows
        assert len(set(analysis.calls)) == len(analysis.calls)
        assert checkpoint.load() is None

    def test_default_start_used_without_checkpoint(self, fake_clock):
        names = names_for(6)
        engine, _, analysis, _ = build(names, clock=fake_clock, default_start=(5, 5))
        engine.run()
        assert analysis.calls[:2] == [(names[3], names[4]), (names[3], names[5])]
        # pairs among names[0..3] have both cells above the start row
        assert len(analysis.calls) == 15 - 6
        assert all(a < b for a, b in analysis.calls)

    def test_late_start_still_reaches_pairs_with_earlier_rows(self, fake_clock):
        names = names_for(20)
        engine, sheet, analysis, _ = build(names, clock=fake_clock, default_start=(17, 17))

        summary = engine.run()

        assert (names[0], names[19]) in analysis.calls
        assert (names[15], names[16]) == analysis.calls[0]
        # Co00 x Co19 is first met at its lower cell (row 21, column 2)
        assert sheet.read_cell(21, 2) == sheet.read_cell(2, 21) == "Co-host a webinar"
        assert summary.success == len(analysis.calls)

    def test_pair_written_this_run_not_revisited_from_mirror(self, fake_clock):
        engine, _, analysis, _ = build(names_for(4), clock=fake_clock)
        summary = engine.run()
        assert len(analysis.calls) == 6
        assert summary.skipped == 0

    def test_checkpoint_saved_before_each_cell(self, fake_clock):
        store = MemoryStore()
        seen = []

        class Spy(StubAnalysis):
            def analyze(self, a, b, existing_value):
                seen.append(Checkpoint(store, "test").load())
                return super().analyze(a, b, existing_value)

        engine, _, _, _ = build(["A", "B", "C"], analysis=Spy(), store=store, clock=fake_clock)
        engine.run()
        assert seen == [(2, 3), (2, 4), (3, 4)]


# ── deadline ──────────────────────────────────────────────────────

class TestDeadline:
    def test_pauses_and_keeps_checkpoint(self, fake_clock):
        names = names_for(10)
        # every attempt sleeps 1s; deadline 15s is crossed at the 20th attempt check
        engine, _, analysis, checkpoint = build(
            names, clock=fake_clock, soft_deadline=15.0, check_every=10,
        )

        summary = engine.run()

        assert summary.paused
        assert summary.attempted == 20
        assert len(analysis.calls) == 20
        assert checkpoint.load() == summary.resume_at

    def test_next_run_resumes_after_pause(self, fake_clock):
        names = names_for(10)
        store = MemoryStore()
        engine, _, analysis, checkpoint = build(
            names, store=store, clock=fake_clock, soft_deadline=15.0, check_every=10,
        )
        engine.run()
        first_run_calls = list(analysis.calls)

        fresh, _, analysis2, _ = build(names, store=store, clock=fake_clock, soft_deadline=1e9)
        # second engine works on the sheet the first one wrote
        fresh.sheet = engine.sheet
        fresh.run()

        assert not set(first_run_calls) & set(analysis2.calls)
        assert len(first_run_calls) + len(analysis2.calls) == 45
        assert checkpoint.load() is None

    def test_deadline_only_checked_every_k_attempts(self, fake_clock):
        engine, _, analysis, _ = build(
            names_for(5), clock=fake_clock, soft_deadline=0.5, check_every=10,
        )
        summary = engine.run()
        # 10 pairs in total; the first check happens after the 10th attempt
        assert len(analysis.calls) == 10
        assert summary.paused


# ── failures ──────────────────────────────────────────────────────

class TestFailures:
    def test_failure_marks_both_cells_and_continues(self, fake_clock):
        analysis = StubAnalysis(fail_on={("A", "B")})
        engine, sheet, _, checkpoint = build(["A", "B", "C"], analysis=analysis, clock=fake_clock)

        summary = engine.run()

        assert summary.errors == 1
        assert summary.success == 2
        for cell in ((2, 3), (3, 2)):
            assert sheet.read_cell(*cell) == ""
            style = sheet.get_cell_style(*cell)
            assert style.background == ERROR_BACKGROUND
            assert "timeout" in style.note
        assert sheet.read_cell(2, 4) == "Co-host a webinar"
        assert checkpoint.load() is None

    def test_failed_pair_retried_next_run_and_error_style_cleared(self, fake_clock):
        analysis = StubAnalysis(fail_on={("A", "B")})
        engine, sheet, _, _ = build(["A", "B"], analysis=analysis, clock=fake_clock)
        engine.run()

        analysis.fail_on.clear()
        engine.run()

        assert sheet.read_cell(2, 3) == sheet.read_cell(3, 2) == "Co-host a webinar"
        assert sheet.get_cell_style(2, 3) == CellStyle()

    def test_extraction_error_is_a_failed_pair(self, fake_clock):
        class Broken(StubAnalysis):
            def analyze(self, a, b, existing_value):
                raise ExtractionError("no score")

        engine, _, _, _ = build(["A", "B"], analysis=Broken(), clock=fake_clock)
        assert engine.run().errors == 1

    def test_configuration_error_aborts(self, fake_clock):
        class Misconfigured(StubAnalysis):
            def analyze(self, a, b, existing_value):
                raise ConfigurationError("no key")

        engine, _, _, _ = build(["A", "B"], analysis=Misconfigured(), clock=fake_clock)
        with pytest.raises(ConfigurationError):
            engine.run()

    def test_missing_entity_is_skipped_with_note(self, fake_clock):
        engine, sheet, analysis, _ = build(["A", "B", "C"], clock=fake_clock)
        del engine.entities["C"]

        summary = engine.run()

        assert summary.skipped == 2
        assert summary.success == 1
        assert analysis.calls == [("A", "B")]
        assert "Missing company information for C" in sheet.get_cell_style(2, 4).note
        assert "Missing company information for C" in sheet.get_cell_style(4, 2).note

    def test_no_headers_is_configuration_error(self, fake_clock):
        workbook = InMemoryWorkbook({"CollaborationMatrix": []})
        engine = PairMatrixEngine(
            workbook.get_sheet("CollaborationMatrix"), StubAnalysis(),
            Checkpoint(MemoryStore(), "test"), {}, clock=fake_clock, sleep=fake_clock.sleep,
        )
        with pytest.raises(ConfigurationError):
            engine.run()

    def test_mismatched_row_headers_are_configuration_error(self, fake_clock):
        rows = [["", "A", "B"], ["A", "", ""], ["C", "", ""]]
        workbook = InMemoryWorkbook({"CollaborationMatrix": rows})
        analysis = StubAnalysis()
        engine = PairMatrixEngine(
            workbook.get_sheet("CollaborationMatrix"), analysis,
            Checkpoint(MemoryStore(), "test"), {}, clock=fake_clock, sleep=fake_clock.sleep,
        )
        with pytest.raises(ConfigurationError, match="differ"):
            engine.run()
        assert analysis.calls == []

    def test_duplicate_header_pair_is_skipped_with_note(self, fake_clock):
        engine, sheet, analysis, _ = build(["A", "B", "A"], clock=fake_clock)

        summary = engine.run()

        assert analysis.calls == [("A", "B"), ("B", "A")]
        assert summary.success == 2
        assert summary.skipped == 1
        for cell in ((2, 4), (4, 2)):
            assert sheet.read_cell(*cell) == ""
            assert "A appears more than once" in sheet.get_cell_style(*cell).note


# ── layout ────────────────────────────────────────────────────────

class TestLayout:
    def test_header_column_away_from_data(self, fake_clock):
        # a label column sits between the names and the data region
        rows = [
            ["", "Sector", "A", "B"],
            ["A", "media", "", ""],
            ["B", "retail", "", ""],
        ]
        workbook = InMemoryWorkbook({"CollaborationMatrix": rows})
        sheet = workbook.get_sheet("CollaborationMatrix")
        entities = {n: Entity(key=n) for n in ("A", "B")}
        analysis = StubAnalysis()
        engine = PairMatrixEngine(
            sheet, analysis, Checkpoint(MemoryStore(), "test"), entities,
            first_data_col=3, header_col=1, clock=fake_clock, sleep=fake_clock.sleep,
        )

        engine.run()

        assert analysis.calls == [("A", "B")]
        assert sheet.read_cell(2, 4) == sheet.read_cell(3, 3) == "Co-host a webinar"
        assert sheet.read_cell(2, 2) == "media"

    def test_header_column_defaults_to_left_of_data(self, fake_clock):
        rows = [["", "Sector", "A", "B"], ["A", "media", "", ""], ["B", "retail", "", ""]]
        workbook = InMemoryWorkbook({"CollaborationMatrix": rows})
        engine = PairMatrixEngine(
            workbook.get_sheet("CollaborationMatrix"), StubAnalysis(),
            Checkpoint(MemoryStore(), "test"), {}, first_data_col=3,
            clock=fake_clock, sleep=fake_clock.sleep,
        )
        with pytest.raises(ConfigurationError):
            engine.run()


# ── readiness / completion hooks ──────────────────────────────────

class TestAnalysisHooks:
    def test_not_ready_pairs_are_skipped(self, fake_clock):
        class NeedsValue(StubAnalysis):
            def is_complete(self, value, style):
                return bool(style.note)

            def is_ready(self, value):
                return bool(value)

        names = ["A", "B", "C"]
        fill = lambda i, j: "narrative" if {i, j} == {0, 1} else ""
        engine, _, analysis, _ = build(names, fill=fill, analysis=NeedsValue(score=90), clock=fake_clock)

        summary = engine.run()

        assert analysis.calls == [("A", "B")]
        assert summary.skipped == 2

    def test_existing_value_passed_as_context(self, fake_clock):
        received = []

        class Capture(StubAnalysis):
            def is_complete(self, value, style):
                return False

            def analyze(self, a, b, existing_value):
                received.append(existing_value)
                return AnalysisResult(score=70, reasoning="ok")

        fill = lambda i, j: "the pitch" if i != j else ""
        engine, sheet, _, _ = build(["A", "B"], fill=fill, analysis=Capture(), clock=fake_clock)
        engine.run()

        assert received == ["the pitch"]
        # score-only results leave the cell text alone
        assert sheet.read_cell(2, 3) == "the pitch"
        assert sheet.get_cell_style(2, 3).background == Tier.FAVORABLE.background
