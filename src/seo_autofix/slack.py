"""Slack notification utilities for SEO AutoFix.

Sends notifications for scan start, completion, and failure.
"""

import logging
import socket
from datetime import datetime
from typing import Optional

import httpx

from .config import get_settings

logger = logging.getLogger(__name__)

MODULE_TITLES = {
    "broken_links": "Broken Link Scan",
    "image_seo": "Image SEO Scan",
}


def get_hostname() -> str:
    """Get the current hostname for context in notifications."""
    try:
        return socket.gethostname()
    except OSError:
        return "unknown"


def send_slack_notification(
    emoji: str,
    title: str,
    message: str,
    color: str = "good",
    webhook_url: Optional[str] = None,
) -> bool:
    """Send a Slack notification via webhook.

    Args:
        emoji: Emoji to prefix the title
        title: Header text for the notification
        message: Body text (supports Slack mrkdwn formatting)
        color: Attachment color ("good", "warning", "danger", or hex)
        webhook_url: Override for the configured webhook

    Returns:
        True if notification was sent successfully, False otherwise.
    """
    webhook_url = webhook_url or get_settings().slack_webhook_url
    if not webhook_url:
        logger.debug(f"[Slack disabled] {title}: {message[:100]}")
        return False

    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    payload = {
        "attachments": [
            {
                "color": color,
                "blocks": [
                    {
                        "type": "header",
                        "text": {"type": "plain_text", "text": f"{emoji} {title}", "emoji": True},
                    },
                    {
                        "type": "section",
                        "text": {"type": "mrkdwn", "text": message},
                    },
                    {
                        "type": "context",
                        "elements": [
                            {
                                "type": "mrkdwn",
                                "text": f"Server: `{get_hostname()}` | Time: `{timestamp}`",
                            }
                        ],
                    },
                ],
            }
        ],
    }

    try:
        response = httpx.post(webhook_url, json=payload, timeout=10.0)
        return response.status_code == 200
    except httpx.HTTPError as e:
        logger.warning(f"[Slack error] Failed to send notification: {e}")
        return False


def notify_scan_started(module: str, scan_id: str, total_pages: int) -> bool:
    """Send notification that a scan has started."""
    message = (
        f"*Pages:* {total_pages}\n"
        f"*Scan ID:* `{scan_id}`"
    )
    return send_slack_notification(":rocket:", f"{MODULE_TITLES.get(module, module)} Started", message)


def notify_scan_completed(
    module: str,
    scan_id: str,
    pages_processed: int,
    broken_count: int,
    duration_seconds: int,
) -> bool:
    """Send notification that a scan has completed."""
    message = (
        f"*Scan ID:* `{scan_id}`\n"
        f"*Pages Scanned:* {pages_processed}\n"
        f"*Findings:* {broken_count}\n"
        f"*Duration:* {duration_seconds // 60}m {duration_seconds % 60}s"
    )
    return send_slack_notification(
        ":white_check_mark:", f"{MODULE_TITLES.get(module, module)} Complete", message
    )


def notify_scan_failed(module: str, scan_id: str, error: str) -> bool:
    """Send notification that a scan has failed."""
    if len(error) > 500:
        error = error[:500] + "..."

    message = (
        f"*Scan ID:* `{scan_id}`\n"
        f"*Error:* {error}"
    )
    return send_slack_notification(
        ":x:", f"{MODULE_TITLES.get(module, module)} FAILED", message, color="danger"
    )
