"""
Channel-specific shaping of the final reply text.

voice     plain speech: no markdown, lists or links; at most a few sentences
whatsapp  light formatting (*bold*), length-capped
chat      plain text passed through with a length cap
"""

import re
from dataclasses import dataclass, field
from typing import Any

from agent_orchestrator.schemas.events import Channel

VOICE_MAX_SENTENCES = 3
WHATSAPP_MAX_CHARS = 1000
CHAT_MAX_CHARS = 2000

_URL = re.compile(r"https?://\S+")
_MD_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")
_MD_EMPHASIS = re.compile(r"(\*\*|__|\*|`)(.+?)\1")
_HEADING = re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE)
_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+", re.MULTILINE)
_SENTENCE = re.compile(r"(?<=[.!?])\s+")
_SPACES = re.compile(r"[ \t]+")


@dataclass
class FormattedReply:
    text: str
    hints: dict[str, Any] = field(default_factory=dict)


def _truncate(text: str, limit: int) -> tuple[str, bool]:
    if len(text) <= limit:
        return text, False
    cut = text[: limit - 1].rsplit(" ", 1)[0].rstrip(" ,;:")
    return cut + "…", True


class ResponseFormatter:
    """Shapes reply text for the channel it will be delivered on."""

    def format(self, text: str, channel: Channel) -> FormattedReply:
        text = text.strip()
        if channel == Channel.VOICE:
            return self._voice(text)
        if channel == Channel.WHATSAPP:
            return self._whatsapp(text)
        body, truncated = _truncate(text, CHAT_MAX_CHARS)
        return FormattedReply(body, {"format": "plain", "truncated": truncated})

    def _voice(self, text: str) -> FormattedReply:
        text = _MD_LINK.sub(r"\1", text)
        text = _URL.sub("", text)
        text = _HEADING.sub("", text)
        text = _LIST_MARKER.sub("", text)
        text = _MD_EMPHASIS.sub(r"\2", text)
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        # A list item without closing punctuation would run into the next one when spoken.
        joined = " ".join(line if line[-1] in ".!?,:;" else line + "." for line in lines)
        joined = _SPACES.sub(" ", joined).strip()

        sentences = [s for s in _SENTENCE.split(joined) if s]
        truncated = len(sentences) > VOICE_MAX_SENTENCES
        spoken = " ".join(sentences[:VOICE_MAX_SENTENCES])
        return FormattedReply(spoken, {"format": "speech", "truncated": truncated, "interruptible": True})

    def _whatsapp(self, text: str) -> FormattedReply:
        text = _MD_LINK.sub(r"\1 (\2)", text)
        text = text.replace("**", "*").replace("__", "_")
        text = _HEADING.sub("", text)
        body, truncated = _truncate(text, WHATSAPP_MAX_CHARS)
        return FormattedReply(body, {"format": "whatsapp", "truncated": truncated})
