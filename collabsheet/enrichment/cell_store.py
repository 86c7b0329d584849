"""
Tabular storage behind the engines.

Coordinates are 1-based (row 1 is the header row on every sheet). Blank
cells read back as ``""``. Two implementations ship: an in-memory workbook
used by tests and dry runs, and an openpyxl-backed ``.xlsx`` file.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl import Workbook, load_workbook
from openpyxl.comments import Comment
from openpyxl.styles import Font, PatternFill

from collabsheet.enrichment.entities import CellStyle
from collabsheet.enrichment.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

NOTE_AUTHOR = "collabsheet"


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class Sheet:
    """Shared sheet operations built on a handful of cell primitives."""

    name: str

    # Primitives -------------------------------------------------------

    def read_cell(self, row: int, col: int) -> Any:
        raise NotImplementedError

    def write_cell(self, row: int, col: int, value: Any) -> None:
        raise NotImplementedError

    def get_cell_style(self, row: int, col: int) -> CellStyle:
        raise NotImplementedError

    def set_cell_style(self, row: int, col: int, style: CellStyle) -> None:
        """Apply the non-``None`` parts of ``style``; ``""`` clears that part."""
        raise NotImplementedError

    def last_row(self) -> int:
        raise NotImplementedError

    def last_column(self) -> int:
        raise NotImplementedError

    def delete_rows(self, start: int, count: int) -> None:
        raise NotImplementedError

    def flush(self) -> None:
        """Make every write so far durable."""

    # Derived ----------------------------------------------------------

    def read_region(self, top: int, left: int, rows: int, cols: int) -> List[List[Any]]:
        return [
            [self.read_cell(r, c) for c in range(left, left + cols)]
            for r in range(top, top + rows)
        ]

    def read_styles(self, top: int, left: int, rows: int, cols: int) -> List[List[CellStyle]]:
        return [
            [self.get_cell_style(r, c) for c in range(left, left + cols)]
            for r in range(top, top + rows)
        ]

    def read_row(self, row: int, width: Optional[int] = None) -> List[Any]:
        width = width or self.last_column()
        return self.read_region(row, 1, 1, width)[0] if width else []

    def write_row(self, row: int, values: Sequence[Any], start_col: int = 1) -> None:
        for offset, value in enumerate(values):
            self.write_cell(row, start_col + offset, value)

    def append_row(self, values: Sequence[Any]) -> int:
        row = self.last_row() + 1
        self.write_row(row, values)
        return row

    def clear(self) -> None:
        last = self.last_row()
        if last:
            self.delete_rows(1, last)

    def headers(self) -> List[str]:
        return [str(v).strip() if not is_blank(v) else "" for v in self.read_row(1)]

    def find_column(self, *names: str) -> Optional[int]:
        """1-based column of the first header matching one of ``names``."""
        headers = self.headers()
        for name in names:
            if name in headers:
                return headers.index(name) + 1
        return None


class WorkbookStore:
    """Named collection of sheets."""

    def sheet_names(self) -> List[str]:
        raise NotImplementedError

    def create_sheet(self, name: str, headers: Optional[Sequence[str]] = None) -> Sheet:
        raise NotImplementedError

    def _sheet(self, name: str) -> Sheet:
        raise NotImplementedError

    def flush(self) -> None:
        pass

    def has_sheet(self, name: str) -> bool:
        return name in self.sheet_names()

    def get_sheet(self, name: str) -> Sheet:
        if not self.has_sheet(name):
            raise ConfigurationError(f"Sheet '{name}' not found")
        return self._sheet(name)

    def get_or_create_sheet(self, name: str, headers: Optional[Sequence[str]] = None) -> Sheet:
        if self.has_sheet(name):
            return self._sheet(name)
        logger.info(f"Creating sheet '{name}'")
        return self.create_sheet(name, headers)


# =========================================================================
# IN-MEMORY
# =========================================================================

class InMemorySheet(Sheet):
    def __init__(self, name: str, rows: Optional[Sequence[Sequence[Any]]] = None):
        self.name = name
        self._values: Dict[Tuple[int, int], Any] = {}
        self._styles: Dict[Tuple[int, int], CellStyle] = {}
        self.writes: List[Tuple[int, int, Any]] = []
        for r, row in enumerate(rows or [], start=1):
            for c, value in enumerate(row, start=1):
                if not is_blank(value):
                    self._values[(r, c)] = value

    def read_cell(self, row, col):
        return self._values.get((row, col), "")

    def write_cell(self, row, col, value):
        self.writes.append((row, col, value))
        if is_blank(value):
            self._values.pop((row, col), None)
        else:
            self._values[(row, col)] = value

    def get_cell_style(self, row, col):
        style = self._styles.get((row, col))
        return CellStyle(style.background, style.note) if style else CellStyle()

    def set_cell_style(self, row, col, style):
        current = self._styles.setdefault((row, col), CellStyle())
        if style.background is not None:
            current.background = style.background or None
        if style.note is not None:
            current.note = style.note or None

    def last_row(self):
        return max((r for r, _ in self._values), default=0)

    def last_column(self):
        return max((c for _, c in self._values), default=0)

    def delete_rows(self, start, count):
        def shift(cells):
            moved = {}
            for (r, c), v in cells.items():
                if r < start:
                    moved[(r, c)] = v
                elif r >= start + count:
                    moved[(r - count, c)] = v
            return moved

        self._values = shift(self._values)
        self._styles = shift(self._styles)

    def as_grid(self) -> List[List[Any]]:
        return self.read_region(1, 1, self.last_row(), self.last_column())


class InMemoryWorkbook(WorkbookStore):
    def __init__(self, sheets: Optional[Dict[str, Sequence[Sequence[Any]]]] = None):
        self._sheets: Dict[str, InMemorySheet] = {}
        for name, rows in (sheets or {}).items():
            self._sheets[name] = InMemorySheet(name, rows)

    def sheet_names(self):
        return list(self._sheets)

    def _sheet(self, name):
        return self._sheets[name]

    def create_sheet(self, name, headers=None):
        sheet = InMemorySheet(name, [list(headers)] if headers else None)
        self._sheets[name] = sheet
        return sheet


# =========================================================================
# XLSX (openpyxl)
# =========================================================================

def _to_argb(color: str) -> str:
    return "FF" + color.lstrip("#").upper()


def _from_argb(rgb: Any) -> Optional[str]:
    if not isinstance(rgb, str) or len(rgb) < 6:
        return None
    return "#" + rgb[-6:].lower()


class XlsxSheet(Sheet):
    def __init__(self, workbook: "XlsxWorkbook", worksheet):
        self._workbook = workbook
        self._ws = worksheet
        self.name = worksheet.title

    def read_cell(self, row, col):
        value = self._ws.cell(row=row, column=col).value
        return "" if value is None else value

    def write_cell(self, row, col, value):
        self._ws.cell(row=row, column=col).value = None if is_blank(value) else value

    def get_cell_style(self, row, col):
        cell = self._ws.cell(row=row, column=col)
        background = None
        if cell.fill is not None and cell.fill.fill_type == "solid":
            background = _from_argb(cell.fill.fgColor.rgb)
        note = cell.comment.text if cell.comment is not None else None
        return CellStyle(background=background, note=note)

    def set_cell_style(self, row, col, style):
        cell = self._ws.cell(row=row, column=col)
        if style.background is not None:
            if style.background:
                cell.fill = PatternFill("solid", fgColor=_to_argb(style.background))
            else:
                cell.fill = PatternFill(fill_type=None)
        if style.note is not None:
            cell.comment = Comment(style.note, NOTE_AUTHOR) if style.note else None

    def last_row(self):
        for row in range(self._ws.max_row, 0, -1):
            if any(not is_blank(c.value) for c in self._ws[row]):
                return row
        return 0

    def last_column(self):
        for col in range(self._ws.max_column, 0, -1):
            for (cell,) in self._ws.iter_rows(min_col=col, max_col=col):
                if not is_blank(cell.value):
                    return col
        return 0

    def delete_rows(self, start, count):
        self._ws.delete_rows(start, count)

    def freeze_header(self) -> None:
        for cell in self._ws[1]:
            cell.font = Font(bold=True)
        self._ws.freeze_panes = "A2"

    def flush(self):
        self._workbook.flush()


class XlsxWorkbook(WorkbookStore):
    """An ``.xlsx`` file; ``flush()`` saves it atomically."""

    def __init__(self, path):
        self.path = Path(path)
        self._placeholder = None
        if self.path.exists():
            self._wb = load_workbook(self.path)
        else:
            logger.info(f"Workbook {self.path} not found, starting a new one")
            self._wb = Workbook()
            self._placeholder = self._wb.active.title

    def sheet_names(self):
        return [name for name in self._wb.sheetnames if name != self._placeholder]

    def _sheet(self, name):
        return XlsxSheet(self, self._wb[name])

    def create_sheet(self, name, headers=None):
        ws = self._wb.create_sheet(title=name)
        if self._placeholder is not None:
            del self._wb[self._placeholder]
            self._placeholder = None
        sheet = XlsxSheet(self, ws)
        if headers:
            sheet.write_row(1, list(headers))
            sheet.freeze_header()
        return sheet

    def flush(self):
        if self._placeholder is not None:
            # nothing but the default empty sheet; don't create the file
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        self._wb.save(tmp_path)
        os.replace(tmp_path, self.path)
