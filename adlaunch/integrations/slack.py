from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

import requests

from adlaunch.infrastructure.utils import getenv_b, getenv_f

logger = logging.getLogger(__name__)

SLACK_TIMEOUT = getenv_f("SLACK_TIMEOUT", 10.0)
MAX_BLOCK_TEXT = 2900
MAX_ERROR_LINES = 10


def _truncate(s: str, limit: int) -> str:
    return s if len(s) <= limit else (s[: max(0, limit - 1)] + "…")


def _env_webhooks() -> Dict[str, str]:
    main_webhook = os.getenv("SLACK_WEBHOOK_URL", "") or ""
    return {
        "default": main_webhook,
        "alerts": os.getenv("SLACK_WEBHOOK_ALERTS", "") or main_webhook,
    }


def slack_enabled() -> bool:
    return any(_env_webhooks().values()) and getenv_b("SLACK_ENABLED", False)


def _sanitize_line(text: str) -> str:
    s = re.sub(r"[\x00-\x08\x0b-\x1f\x7f]", "", text or "")
    return s.strip()


@dataclass
class SlackMessage:
    text: str = ""
    blocks: Optional[List[Dict[str, Any]]] = None
    topic: Literal["default", "alerts"] = "default"
    severity: Literal["info", "warn", "error"] = "info"

    def route_webhook(self) -> str:
        w = _env_webhooks()
        return w.get(self.topic) or w["default"]

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"text": _truncate(self.text, MAX_BLOCK_TEXT)}
        if self.blocks:
            body["blocks"] = self.blocks
        return body


def send(msg: SlackMessage) -> bool:
    """Post to the routed webhook. Never raises: notifications must not break a deployment."""
    if not slack_enabled():
        logger.info(f"[SLACK DISABLED {msg.severity}/{msg.topic}] {msg.text}")
        return False
    url = msg.route_webhook()
    try:
        r = requests.post(url, json=msg.payload(), timeout=SLACK_TIMEOUT)
        if r.status_code >= 400:
            logger.warning(f"Slack webhook returned {r.status_code}: {r.text[:200]}")
            return False
        return True
    except requests.RequestException as e:
        logger.warning(f"Slack webhook failed: {e}")
        return False


def notify(text: str, severity: Literal["info", "warn", "error"] = "info", topic: Literal["default", "alerts"] = "default") -> bool:
    return send(SlackMessage(text=_sanitize_line(text), severity=severity, topic=topic))


def alert_error(error_msg: str) -> bool:
    return send(SlackMessage(text=f"🚨 Deployment error: {_sanitize_line(error_msg)}", severity="error", topic="alerts"))


def alert_deployment_summary(adset_name: str, report: Dict[str, Any]) -> bool:
    deployed = int(report.get("deployed", 0))
    failed = int(report.get("failed", 0))
    severity: Literal["info", "warn", "error"] = "info"
    if failed and not deployed:
        severity = "error"
    elif failed:
        severity = "warn"

    icon = {"info": "✅", "warn": "⚠️", "error": "🛑"}[severity]
    lines = [f"{icon} *{_sanitize_line(adset_name)}*: {deployed} deployed, {failed} failed"]
    for err in (report.get("errors") or [])[:MAX_ERROR_LINES]:
        code = f" (code {err['code']})" if err.get("code") is not None else ""
        lines.append(f"• `{err.get('combinationId')}` {_truncate(_sanitize_line(str(err.get('error'))), 200)}{code}")
    if failed > MAX_ERROR_LINES:
        lines.append(f"… and {failed - MAX_ERROR_LINES} more")

    text = "\n".join(lines)
    blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": _truncate(text, MAX_BLOCK_TEXT)}}]
    return send(SlackMessage(text=text, blocks=blocks, severity=severity, topic="alerts" if failed else "default"))
