"""
Output parsing for OutputParser nodes.

Deterministic, synchronous and never raising: malformed input degrades to a
best-effort wrapped value because parsing is a terminal formatting step.
"""

import json
import logging
import re
from collections.abc import Mapping
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.MULTILINE)
_FENCE_CLOSE = re.compile(r"\s*```$", re.MULTILINE)
_BRACED = re.compile(r"\{.*\}", re.DOTALL)


def _repair_candidates(candidate: str) -> list[str]:
    """The raw candidate first, then one with Python constants fixed."""
    fixed = re.sub(r"\bTrue\b", "true", candidate)
    fixed = re.sub(r"\bFalse\b", "false", fixed)
    fixed = re.sub(r"\bNone\b", "null", fixed)
    candidates = [candidate]
    if fixed != candidate:
        candidates.append(fixed)
    if "'" in fixed and '"' not in fixed:
        candidates.append(fixed.replace("'", '"'))
    return candidates


def parse_json(value: Any) -> dict[str, Any]:
    """
    Extract and parse the first brace-delimited object in ``value``.

    Returns ``{"content": value}`` when nothing parseable is found.
    """
    if isinstance(value, Mapping):
        return dict(value)
    text = value if isinstance(value, str) else str(value)

    stripped = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", text)).strip()
    match = _BRACED.search(stripped)
    if match:
        for candidate in _repair_candidates(match.group(0)):
            try:
                parsed = json.loads(candidate)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed
    logger.debug("No JSON object found in parser input, wrapping as content")
    return {"content": value}


def parse_list(value: Any) -> list[str]:
    """Split on newlines and drop blank lines."""
    if isinstance(value, list):
        return [str(item) for item in value if str(item).strip()]
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return [line.strip() for line in text.splitlines() if line.strip()]


def _field_names(schema: Any) -> list[str]:
    if isinstance(schema, Mapping):
        fields = schema.get("fields", [])
    else:
        fields = schema or []
    names = []
    for f in fields:
        if isinstance(f, Mapping):
            name = f.get("name")
        else:
            name = f
        if name:
            names.append(str(name))
    return names


def parse_structured(value: Any, schema: Any) -> dict[str, str]:
    """
    Pull configured fields out of ``name: value`` lines.

    Matching is case-insensitive on the ``name:`` marker; fields that do not
    appear are left out of the result.
    """
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    lines = text.splitlines()
    parsed: dict[str, str] = {}
    for name in _field_names(schema):
        marker = f"{name.lower()}:"
        for line in lines:
            idx = line.lower().find(marker)
            if idx != -1:
                parsed[name] = line[idx + len(marker) :].strip()
                break
    return parsed


def parse_output(value: Any, parser_type: str | None, schema: Any = None) -> Any:
    """Dispatch on ``parser_type``. Unknown types return the input unchanged."""
    kind = (parser_type or "").lower()
    try:
        if kind == "json":
            return parse_json(value)
        if kind == "list":
            return parse_list(value)
        if kind == "structured":
            return parse_structured(value, schema)
    except Exception as e:
        logger.warning(f"Output parser '{kind}' degraded to raw content: {e}")
        return {"content": value}
    return value
