"""JSON extraction from free-form model output.

Models are asked for a bare JSON object but routinely wrap it in prose,
markdown fences, or reasoning tags. This module finds the first balanced
``{...}`` block that parses, falling back to ``json_repair`` for output that
is almost-but-not-quite JSON (trailing commas, truncated tails).
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterator, Optional

import json_repair

logger = logging.getLogger(__name__)

# ── JSON Extraction Patterns ──────────────────────────────────

_CODE_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?|```\s*", re.DOTALL)
_THINK_TAG_RE = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)


def _clean_json_text(text: str) -> str:
    """Remove markdown fences and reasoning tags."""
    text = _THINK_TAG_RE.sub("", text).strip()
    text = _CODE_FENCE_RE.sub("", text).strip()
    return text


def _balanced_end(text: str, start: int) -> Optional[int]:
    """Index of the brace closing the one at *start*, ignoring braces in strings."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None


def iter_json_blocks(text: str) -> Iterator[str]:
    """Yield top-level balanced ``{...}`` blocks in order of appearance."""
    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is None:
            return
        yield text[start:end + 1]
        start = text.find("{", end + 1)


def extract_first_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` block in *text*, or None."""
    return next(iter_json_blocks(text), None)


def parse_json_object(text: str) -> Dict[str, Any]:
    """Extract and parse the first JSON object from model output.

    Raises:
        ValueError: If no JSON object can be recovered.
    """
    if not text or not text.strip():
        raise ValueError("Empty model response")

    cleaned = _clean_json_text(text)

    for block in iter_json_blocks(cleaned):
        try:
            data = json.loads(block)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    # Last resort: repair from the first opening brace (handles truncated tails)
    start = cleaned.find("{")
    if start == -1:
        raise ValueError(f"No JSON object found in model response. First 200 chars: {text[:200]}")

    repaired = json_repair.loads(cleaned[start:])
    if not isinstance(repaired, dict) or not repaired:
        raise ValueError(
            f"Cannot extract a JSON object from model response. First 200 chars: {text[:200]}"
        )

    logger.warning("Model response needed JSON repair")
    return repaired
