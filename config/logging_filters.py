"""
Run ids for log output.

Every CLI command runs under a short id (``<command>-<hex>``) that
``CorrelationIdFilter`` stamps onto each record, so the console lines and
process-log rows of one matrix or batch run can be grouped afterwards.
"""
import logging
import threading
import uuid
from contextlib import contextmanager

_local = threading.local()


def get_correlation_id() -> str:
    """Current run id, or an empty string outside a run."""
    return getattr(_local, "correlation_id", "")


def set_correlation_id(cid: str) -> None:
    _local.correlation_id = cid


def new_run_id(prefix: str = "run") -> str:
    """Generate a run id for ``prefix`` and make it current."""
    cid = f"{prefix}-{uuid.uuid4().hex[:8]}"
    set_correlation_id(cid)
    return cid


@contextmanager
def run_scope(prefix: str):
    """Run the block under a fresh run id; the previous id is restored after."""
    previous = get_correlation_id()
    try:
        yield new_run_id(prefix)
    finally:
        set_correlation_id(previous)


class CorrelationIdFilter(logging.Filter):
    """Stamp ``record.correlation_id`` with the current run id."""

    def filter(self, record):
        record.correlation_id = get_correlation_id() or "-"
        return True
