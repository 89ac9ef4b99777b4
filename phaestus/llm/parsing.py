"""Tolerant extraction of JSON and fenced code from free-form LLM text."""

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"```([\w+#.-]*)[ \t]*\n?(.*?)```", re.DOTALL)


def extract_code_blocks(text: str) -> list[tuple[str | None, str]]:
    """Return every fenced block as ``(language, code)``, in order.

    ``language`` is the lower-cased fence tag or None for a bare fence.
    """
    if not text:
        return []
    blocks = []
    for lang, body in _FENCE_RE.findall(text):
        blocks.append((lang.lower() or None, body.strip()))
    return blocks


def extract_code_block(text: str, language: str | None = None) -> str | None:
    """Extract one fenced code block.

    Prefers a block tagged with ``language``, then any fenced block.
    Returns None when the text has no fences; callers fall back to the
    raw text themselves.
    """
    blocks = extract_code_blocks(text)
    if not blocks:
        return None
    if language:
        wanted = language.lower()
        for lang, code in blocks:
            if lang == wanted:
                return code
    return blocks[0][1]


def _balanced_end(text: str, start: int) -> int | None:
    """Index of the bracket closing the one at ``start``, or None."""
    closers: list[str] = []
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
            closers.append("}")
        elif ch == "[":
            closers.append("]")
        elif ch in "}]":
            if not closers or closers.pop() != ch:
                return None
            if not closers:
                return i
    return None


def _loads_container(candidate: str) -> Any:
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, (dict, list)) else None


def parse_json(text: str) -> Any:
    """Parse the JSON object or array embedded in ``text``.

    Tries the whole text, then ```json fences, then the first balanced
    ``{...}`` / ``[...]`` substring that decodes. Returns None when
    nothing parses.
    """
    if not text:
        return None

    value = _loads_container(text.strip())
    if value is not None:
        return value

    for lang, body in extract_code_blocks(text):
        if lang in (None, "json"):
            value = _loads_container(body)
            if value is not None:
                return value

    for start, ch in enumerate(text):
        if ch not in "{[":
            continue
        end = _balanced_end(text, start)
        if end is None:
            continue
        value = _loads_container(text[start:end + 1])
        if value is not None:
            return value
    return None


def parse_json_object(text: str) -> dict[str, Any] | None:
    """Like parse_json, but only accepts a JSON object."""
    value = parse_json(text)
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        # A stray array (e.g. ``buf[10]`` in code) may precede the object.
        for start, ch in enumerate(text):
            if ch != "{":
                continue
            end = _balanced_end(text, start)
            if end is None:
                continue
            obj = _loads_container(text[start:end + 1])
            if isinstance(obj, dict):
                return obj
    return None


def list_field(data: Any, key: str) -> list:
    """Items under ``key`` in a parsed response, or the response itself if it is a list.

    Anything that is not a list yields ``[]``.
    """
    if isinstance(data, dict):
        value = data.get(key)
        return value if isinstance(value, list) else []
    if isinstance(data, list):
        return data
    return []
