"""Prompt-safe log formatting.

Task prompts routinely embed credentials pasted by users, so runtime logs
carry only prompt metadata unless ``OCONTINUE_PROMPT_DEBUG`` is enabled.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
from typing import Final

_PROMPT_DEBUG_ENV: Final[str] = "OCONTINUE_PROMPT_DEBUG"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}

_ASSIGNMENT_SECRET_RE = re.compile(
    r"(?i)\b(api[_-]?key|access[_-]?token|client[_-]?secret|token|secret|password)\b"
    r"(\s*[:=]\s*)([^\s,;]+)"
)
_BEARER_RE = re.compile(r"(?i)\bbearer\s+([A-Za-z0-9._\-+/=]{10,})")
_KNOWN_TOKEN_RES = (
    re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"),
    re.compile(r"\bsk-(?:ant-|proj-)?[A-Za-z0-9_-]{16,}\b"),
    re.compile(r"\bAKIA[0-9A-Z]{16}\b"),
)


def is_prompt_debug_enabled() -> bool:
    raw = os.getenv(_PROMPT_DEBUG_ENV, "").strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    return logging.getLogger().isEnabledFor(logging.DEBUG)


def redact_sensitive_text(text: str) -> tuple[str, int]:
    """Mask likely secrets; return the masked text and the number of hits."""
    redacted = str(text or "")
    hits = 0
    redacted, count = _ASSIGNMENT_SECRET_RE.subn(r"\1\2[REDACTED]", redacted)
    hits += count
    redacted, count = _BEARER_RE.subn("Bearer [REDACTED]", redacted)
    hits += count
    for pattern in _KNOWN_TOKEN_RES:
        redacted, count = pattern.subn("[REDACTED_TOKEN]", redacted)
        hits += count
    return redacted, hits


def format_prompt_log_line(prompt: str, *, label: str = "Prompt", debug: bool | None = None) -> str:
    """Describe *prompt* for a log line: redacted text in debug mode, metadata otherwise."""
    text = str(prompt or "")
    redacted, hits = redact_sensitive_text(text)
    debug_enabled = is_prompt_debug_enabled() if debug is None else bool(debug)
    if debug_enabled:
        return f"{label}: {redacted}"
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]
    return (
        f"{label} metadata: len={len(text)}, sha256={digest}, redaction_hits={hits} "
        f"(set {_PROMPT_DEBUG_ENV}=1 to include prompt text)"
    )
