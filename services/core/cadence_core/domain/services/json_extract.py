"""Extract JSON from free-text model output.

Models wrap their answer in prose or markdown fences. These helpers return
the first balanced ``{...}`` or ``[...]`` span. The scan tracks string
literals and escapes so braces inside strings do not end a span early.
"""

import json
from typing import Any, Optional

_CLOSERS = {"{": "}", "[": "]"}


def find_balanced_span(text: str, opener: str) -> Optional[str]:
    """Return the first balanced span starting with ``opener``.

    Args:
        text: Raw model output.
        opener: ``"{"`` or ``"["``.

    Returns:
        The span including its delimiters, or None if no opener starts a
        span that closes before the end of the text.
    """
    if opener not in _CLOSERS:
        raise ValueError(f"Unsupported opener: {opener!r}")

    start = text.find(opener)
    while start != -1:
        end = _match_from(text, start)
        if end is not None:
            return text[start : end + 1]
        start = text.find(opener, start + 1)
    return None


def _match_from(text: str, start: int) -> Optional[int]:
    stack: list[str] = []
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
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in ("}", "]"):
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return i
    return None


def extract_json_object(text: str) -> Optional[dict[str, Any]]:
    """Parse the first balanced object in ``text``.

    Returns:
        The decoded object, or None if there is no balanced span or it is
        not valid JSON.
    """
    return _decode(find_balanced_span(text, "{"), dict)


def extract_json_array(text: str) -> Optional[list[Any]]:
    """Parse the first balanced array in ``text``."""
    return _decode(find_balanced_span(text, "["), list)


def _decode(span: Optional[str], expected: type) -> Any:
    if span is None:
        return None
    try:
        value = json.loads(span)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, expected) else None


def json_integer(value: Any) -> int:
    """Coerce a decoded JSON number to int.

    Accepts ints and integral floats (``80.0``). Strings and booleans are
    rejected so ``"80"`` or ``true`` count as contract violations.

    Raises:
        ValueError: If ``value`` is not an integral JSON number.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a JSON number")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("must be an integer")
        return int(value)
    return value
