from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

import requests

logger = logging.getLogger(__name__)

SLACK_TIMEOUT = float(os.getenv("SLACK_TIMEOUT", "10") or 10)
MAX_BLOCKS = 45
MAX_BLOCK_TEXT = 2900

EMOJI = {
    "info": "ℹ️",
    "warn": "⏸️",
    "error": "🛑",
    "ok": "🟢",
}

Severity = Literal["info", "warn", "error", "ok"]


def _truncate(s: str, limit: int) -> str:
    return s if len(s) <= limit else (s[: max(0, limit - 1)] + "…")


def _mk_section(text: str) -> Dict[str, Any]:
    return {"type": "section", "text": {"type": "mrkdwn", "text": _truncate(text, MAX_BLOCK_TEXT)}}


def _mk_title(sev: str, title: str) -> str:
    icon = EMOJI.get(sev, "ℹ️")
    return f"{icon} *{title}*"


def _sanitize_line(text: str) -> str:
    if not text:
        return ""
    text = re.sub(r"[\x00-\x1f\x7f]", " ", text)
    text = re.sub(r"[“”]", '"', text)
    text = re.sub(r"[‘’]", "'", text)
    text = re.sub(r"\s+", " ", text)
    return text.strip()


def build_basic_blocks(title: str, lines: List[str], severity: str = "info") -> List[Dict[str, Any]]:
    blocks: List[Dict[str, Any]] = [_mk_section(_mk_title(severity, _sanitize_line(title)))]
    chunk, acc = [], ""
    for ln in lines:
        ln = _sanitize_line(ln)
        if not ln:
            continue
        if len(acc) + len(ln) + 1 > MAX_BLOCK_TEXT:
            if acc:
                chunk.append(acc)
            acc = ln
        else:
            acc += ("" if not acc else "\n") + ln
    if acc:
        chunk.append(acc)
    for ch in chunk[: (MAX_BLOCKS - 1)]:
        blocks.append(_mk_section(ch))
    return blocks


@dataclass
class SlackMessage:
    text: str = ""
    severity: Severity = "info"
    blocks: Optional[List[Dict[str, Any]]] = None

    def payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"text": _sanitize_line(self.text)}
        if self.blocks:
            body["blocks"] = self.blocks
        return body


def notify(
    text: str,
    severity: Severity = "info",
    *,
    blocks: Optional[List[Dict[str, Any]]] = None,
    webhook_url: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> bool:
    """Post to the incoming webhook. Never raises; returns whether Slack accepted it."""
    msg = SlackMessage(text=text, severity=severity, blocks=blocks)
    webhook = webhook_url or os.getenv("SLACK_WEBHOOK_URL") or ""
    if not webhook:
        logger.info(f"[SLACK DISABLED {severity}] {_sanitize_line(text)}")
        return False

    try:
        r = (session or requests).post(webhook, json=msg.payload(), timeout=SLACK_TIMEOUT)
    except requests.RequestException as e:
        logger.warning(f"[SLACK] Failed to send {severity} message: {e}")
        return False
    if r.status_code >= 400:
        logger.warning(f"[SLACK] Webhook returned {r.status_code}: {r.text[:200]}")
        return False
    return True


__all__ = ["SlackMessage", "build_basic_blocks", "notify"]
