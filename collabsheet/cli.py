"""
Operator commands.

    collabsheet populate-companies
    collabsheet analyze-collaborations
    collabsheet analyze-probability
    collabsheet reset-progress [--workflow collaboration|probability]
    collabsheet enrich-contacts [--start-row N] [--num-rows N] [--sheet NAME]
    collabsheet process-profiles
    collabsheet view-log
    collabsheet clear-log
"""

import argparse
import logging
import logging.config
import sys

from collabsheet.enrichment.cell_store import XlsxWorkbook
from collabsheet.enrichment.checkpoint import JsonFileStore
from collabsheet.enrichment.exceptions import ConfigurationError
from collabsheet.enrichment.llm_client import LlmClient
from collabsheet.enrichment.process_log import SheetLogHandler, clear_log, view_log
from collabsheet.enrichment.retry_policy import RetryPolicy
from collabsheet.workflows.collaboration import (
    NAMESPACES,
    analyze_collaborations,
    analyze_probability,
    reset_progress,
)
from collabsheet.workflows.company_info import populate_companies
from collabsheet.workflows.contacts import enrich_contacts
from collabsheet.workflows.profiles import process_profiles
from config.alerting import alert_run_outcome, send_alert
from config.logging_filters import run_scope
from config.settings import LOGGING, AppConfig

logger = logging.getLogger(__name__)

# Commands that run an engine and should write to the log sheet
ENGINE_COMMANDS = {
    "populate-companies",
    "analyze-collaborations",
    "analyze-probability",
    "enrich-contacts",
    "process-profiles",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="collabsheet",
        description="LLM enrichment of company lists, collaboration matrices and contact sheets",
    )
    parser.add_argument("--workbook", help="Path to the .xlsx workbook (default: WORKBOOK_PATH)")
    parser.add_argument("--checkpoint", help="Path to the checkpoint JSON file (default: CHECKPOINT_PATH)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("populate-companies", help="Fill missing company profile fields")
    sub.add_parser("analyze-collaborations", help="Run the collaboration narrative matrix (resumable)")
    sub.add_parser("analyze-probability", help="Score collaboration probability (resumable)")

    reset = sub.add_parser("reset-progress", help="Clear the resume checkpoint")
    reset.add_argument("--workflow", choices=NAMESPACES, help="Only reset this workflow")

    contacts = sub.add_parser("enrich-contacts", help="Enrich a range of contact rows")
    contacts.add_argument("--start-row", type=int, default=2, help="First row to process")
    contacts.add_argument("--num-rows", type=int, default=None, help="Rows to process (default: to the end)")
    contacts.add_argument("--sheet", default=None, help="Contacts sheet name")

    sub.add_parser("process-profiles", help="Process the next LinkedIn profile batch")
    sub.add_parser("view-log", help="Print the process log")
    sub.add_parser("clear-log", help="Clear the process log (keeps the header)")
    return parser


def _summarize(command: str, prefix: str, summary) -> str:
    alert_run_outcome(command, summary)
    return f"{prefix} {summary}"


def run_command(args, config: AppConfig, workbook, store, llm: LlmClient) -> str:
    """Dispatch one command; returns the summary line to print."""
    retry = RetryPolicy(config.retry_max_attempts, config.retry_base_delay)
    command = args.command

    if command == "populate-companies":
        return _summarize(command, "Completed!", populate_companies(workbook, config, llm, retry))
    if command == "analyze-collaborations":
        summary = analyze_collaborations(workbook, config, llm, store, retry)
        return _summarize(command, "Analysis complete!", summary)
    if command == "analyze-probability":
        summary = analyze_probability(workbook, config, llm, store, retry)
        return _summarize(command, "Probability analysis:", summary)
    if command == "reset-progress":
        reset_progress(store, args.workflow)
        return "Analysis progress has been reset"
    if command == "enrich-contacts":
        summary = enrich_contacts(
            workbook, config, llm, retry,
            start_row=args.start_row, num_rows=args.num_rows, sheet_name=args.sheet,
        )
        return _summarize(command, "Contact enrichment completed!", summary)
    if command == "process-profiles":
        summary = process_profiles(workbook, config, llm, retry)
        return _summarize(command, "Batch processing complete!", summary)
    if command == "view-log":
        rows = view_log(workbook, config.log_sheet_name)
        for row in rows:
            print("\t".join(str(v) for v in row))
        return f"{len(rows)} log entries"
    if command == "clear-log":
        return f"Logs have been cleared ({clear_log(workbook, config.log_sheet_name)} rows)"
    raise ConfigurationError(f"Unknown command: {command}")


def _execute(args) -> str:
    config = AppConfig.from_env()
    if args.workbook:
        config.workbook_path = args.workbook
    if args.checkpoint:
        config.checkpoint_path = args.checkpoint

    workbook = XlsxWorkbook(config.workbook_path)
    store = JsonFileStore(config.checkpoint_path)

    handler = None
    if args.command in ENGINE_COMMANDS:
        handler = SheetLogHandler(workbook, config.log_sheet_name)
        logging.getLogger().addHandler(handler)
    try:
        return run_command(args, config, workbook, store, LlmClient())
    finally:
        if handler is not None:
            logging.getLogger().removeHandler(handler)
        workbook.flush()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.config.dictConfig(LOGGING)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    with run_scope(args.command):
        try:
            message = _execute(args)
        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            send_alert("critical", f"collabsheet {args.command} aborted", str(e))
            print(f"Error: {e}", file=sys.stderr)
            return 2

    print(message)
    return 0


if __name__ == "__main__":
    sys.exit(main())
