"""
Append-only audit sheet fed by the logging module.

Attach ``SheetLogHandler`` to a logger and every record becomes a
``[Timestamp, Process, Status, Details]`` row. Use ``log_event`` to set
the process and status columns explicitly; other records fall back to
the logger name and level.
"""

import logging
from datetime import datetime
from typing import List

from collabsheet.enrichment.cell_store import WorkbookStore

LOG_HEADERS = ["Timestamp", "Process", "Status", "Details"]


def log_event(logger: logging.Logger, process: str, status: str, detail: str,
              level: int = logging.INFO) -> None:
    logger.log(level, detail, extra={"sheet_process": process, "sheet_status": status})


class SheetLogHandler(logging.Handler):
    """Writes log records to a sheet (created with a header row if absent)."""

    def __init__(self, workbook: WorkbookStore, sheet_name: str = "ProcessLog",
                 level: int = logging.INFO):
        super().__init__(level)
        self.workbook = workbook
        self.sheet = workbook.get_or_create_sheet(sheet_name, LOG_HEADERS)

    def emit(self, record):
        try:
            process = getattr(record, "sheet_process", None) or record.name
            status = getattr(record, "sheet_status", None) or record.levelname.title()
            timestamp = datetime.fromtimestamp(record.created).isoformat(timespec="seconds")
            self.sheet.append_row([timestamp, process, status, record.getMessage()])
        except Exception:
            self.handleError(record)

    def flush(self):
        self.sheet.flush()


def view_log(workbook: WorkbookStore, sheet_name: str = "ProcessLog") -> List[List]:
    """All log rows below the header, oldest first."""
    if not workbook.has_sheet(sheet_name):
        return []
    sheet = workbook.get_sheet(sheet_name)
    last = sheet.last_row()
    if last < 2:
        return []
    return sheet.read_region(2, 1, last - 1, len(LOG_HEADERS))


def clear_log(workbook: WorkbookStore, sheet_name: str = "ProcessLog") -> int:
    """Delete every log row but keep the header. Returns rows removed."""
    if not workbook.has_sheet(sheet_name):
        return 0
    sheet = workbook.get_sheet(sheet_name)
    last = sheet.last_row()
    if last < 2:
        return 0
    sheet.delete_rows(2, last - 1)
    sheet.flush()
    return last - 1
