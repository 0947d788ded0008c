"""
Security Utilities
==================

Scene text is authored content that ends up inside model prompts, and
provider errors can echo request headers back at us. These helpers keep
both in check before anything leaves the process or reaches a log.
"""

import re
import logging

logger = logging.getLogger(__name__)


MAX_PROMPT_LENGTH = 2000

# Phrases and chat-template tokens that must not reach a generation model
_CONTROL_SEQUENCES = re.compile(
    r"ignore (?:all )?previous instructions"
    r"|disregard (?:the )?above"
    r"|system prompt"
    r"|\[/?INST\]"
    r"|<\|im_(?:start|end)\|>",
    re.IGNORECASE,
)

_WHITESPACE_RUN = re.compile(r"[ \t]{2,}")

# (pattern, replacement); env assignments first so the name survives
_SECRET_PATTERNS = [
    (
        re.compile(r"\b(FAL_KEY|FAL_API_KEY|BRAIN_API_KEY|LAST_FRAME_API_TOKEN)=\S+"),
        r"\1=***REDACTED***",
    ),
    (re.compile(r"\b(Bearer|Key)\s+[A-Za-z0-9_\-.:]+", re.IGNORECASE), r"\1 ***REDACTED***"),
    (re.compile(r"\bfal_[A-Za-z0-9]+", re.IGNORECASE), "fal_***REDACTED***"),
    (
        re.compile(r"(api[_-]?key|token)(['\"]?\s*[:=]\s*['\"]?)[A-Za-z0-9_\-]+", re.IGNORECASE),
        r"\1\2***REDACTED***",
    ),
]


def sanitize_prompt(prompt: str, max_length: int = MAX_PROMPT_LENGTH) -> str:
    """
    Clean a prompt assembled from scene data.

    Drops non-printable characters and control sequences, collapses the
    whitespace runs they leave behind and truncates to ``max_length``.
    """
    if not prompt:
        return ""

    cleaned = "".join(ch for ch in prompt if ch.isprintable() or ch in "\n\t")
    cleaned = _CONTROL_SEQUENCES.sub("", cleaned)
    cleaned = _WHITESPACE_RUN.sub(" ", cleaned).strip()

    if len(cleaned) > max_length:
        logger.warning(f"Prompt truncated from {len(cleaned)} to {max_length} characters")
        cleaned = cleaned[:max_length].rstrip()

    return cleaned


def redact_api_key(text: str) -> str:
    """Mask credentials in text before it is logged or attached to an error."""
    if not text:
        return text

    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text
