"""
Operator alerts.

Alerts always go to the ``alerting`` logger. When ``SLACK_WEBHOOK_URL`` is
set they are also posted to Slack, tagged with the current run id.
"""
import logging
import os

import requests

from config.logging_filters import get_correlation_id

logger = logging.getLogger("alerting")

LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "warning": logging.WARNING,
    "info": logging.INFO,
}

SLACK_EMOJI = {
    "critical": ":red_circle:",
    "warning": ":warning:",
    "info": ":information_source:",
}


def send_alert(severity: str, title: str, detail: str = "") -> None:
    """
    Send an alert through the configured channels.

    Args:
        severity: "critical", "warning", or "info"
        title: Short alert title
        detail: Additional context (run summary, error text)
    """
    logger.log(LOG_LEVELS.get(severity, logging.INFO), f"ALERT [{severity.upper()}]: {title} -- {detail}")

    webhook = os.environ.get("SLACK_WEBHOOK_URL")
    if not webhook:
        return

    text = f"{SLACK_EMOJI.get(severity, SLACK_EMOJI['info'])} *{title}*"
    run_id = get_correlation_id()
    if run_id:
        text += f" `{run_id}`"
    if detail:
        text += f"\n{detail}"
    try:
        requests.post(webhook, json={"text": text}, timeout=5)
    except requests.RequestException:
        logger.exception("Failed to send Slack alert")


def alert_run_outcome(command: str, summary) -> None:
    """Warn when a run paused at the time limit or finished with errors."""
    if getattr(summary, "paused", False):
        send_alert("warning", f"collabsheet {command} paused, run it again to resume", str(summary))
    elif getattr(summary, "errors", 0):
        send_alert("warning", f"collabsheet {command} finished with {summary.errors} errors", str(summary))
