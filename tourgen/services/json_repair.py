"""Extraction and repair of JSON embedded in language-model output."""

import json
import logging
import re
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
OBJECT_SPAN = re.compile(r"(\{[\s\S]*\})")
TRAILING_COMMA = re.compile(r",(\s*[}\]])")
TRAILING_COMMA_AT_END = re.compile(r",\s*\Z")
SMART_DOUBLE_QUOTES = re.compile("[“”„‟]")
SMART_SINGLE_QUOTES = re.compile("[‘’‚‛]")
DANGLING_STRING = re.compile(r',?\s*"[^"]*\Z')
DANGLING_KEY = re.compile(r',?\s*"[^"]*"\s*:\s*\Z')

VALID_ESCAPES = '"\\/bfnrtu'
CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\f": "\\f", "\b": "\\b"}
CLOSERS = {"{": "}", "[": "]"}

END_OF_VALUE = re.compile(r"\s*[,}\]:]")
NEXT_KEY = re.compile(r'\s*,?\s*"[^"]+"\s*:')
TEXT_CONTINUATION = re.compile(r"[a-zA-Z0-9\s,.'!?;:\-]")


def extract_json_text(content: str) -> str:
    """
    Pick the JSON candidate out of a model response.

    A fenced code block wins, then the outermost {...} span, then the
    whole body.
    """
    match = FENCED_BLOCK.search(content) or OBJECT_SPAN.search(content)
    return match.group(1) if match else content


def looks_like_embedded_quote(text: str, pos: int) -> bool:
    """Guess whether the quote at pos sits inside a string value instead of closing it."""
    remaining = text[pos + 1:]
    if not remaining:
        return False
    if END_OF_VALUE.match(remaining):
        return False
    if NEXT_KEY.match(remaining):
        return False
    return bool(TEXT_CONTINUATION.match(remaining))


def escape_chars_in_strings(text: str) -> str:
    """Escape control characters, stray backslashes and embedded quotes inside string values."""
    result: List[str] = []
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        next_char = text[i + 1] if i + 1 < len(text) else ""

        if escape_next:
            result.append(char)
            escape_next = False
        elif char == "\\":
            if in_string and (not next_char or next_char not in VALID_ESCAPES):
                result.append("\\\\")
            else:
                result.append(char)
                escape_next = True
        elif char == '"':
            if not in_string:
                in_string = True
                result.append(char)
            elif looks_like_embedded_quote(text, i):
                result.append('\\"')
            else:
                in_string = False
                result.append(char)
        elif in_string and char in CONTROL_ESCAPES:
            result.append(CONTROL_ESCAPES[char])
        elif in_string and ord(char) < 32:
            result.append("\\u%04x" % ord(char))
        else:
            result.append(char)

    return "".join(result)


def sanitize_json_text(text: str) -> str:
    """Apply the cheap textual fixes every model response gets before parsing."""
    text = SMART_DOUBLE_QUOTES.sub('"', text)
    text = SMART_SINGLE_QUOTES.sub("'", text)
    text = TRAILING_COMMA.sub(r"\1", text)
    text = TRAILING_COMMA_AT_END.sub("", text)
    return escape_chars_in_strings(text)


def _scan(text: str):
    """Return (stack of unclosed openers, still inside a string) or None when delimiters mismatch."""
    stack: List[str] = []
    in_string = False
    escape_next = False

    for char in text:
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            if in_string:
                escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char in CLOSERS:
            stack.append(char)
        elif char in ("}", "]"):
            if not stack or CLOSERS[stack[-1]] != char:
                return None
            stack.pop()

    return stack, in_string


def repair_truncated_json(text: str) -> Optional[str]:
    """
    Close a truncated JSON document.

    Drops a dangling string fragment or key, then appends the closers for
    every still-open object and array. Returns None when there is nothing
    to repair or the delimiters cannot be balanced.
    """
    if not text or not text.strip():
        return None

    scanned = _scan(text)
    if scanned is None:
        return None
    stack, in_string = scanned

    repaired = text
    if in_string:
        repaired = DANGLING_STRING.sub("", repaired)
    repaired = DANGLING_KEY.sub("", repaired.rstrip())
    repaired = TRAILING_COMMA_AT_END.sub("", repaired)

    if repaired != text:
        scanned = _scan(repaired)
        if scanned is None or scanned[1]:
            return None
        stack = scanned[0]

    repaired += "".join(CLOSERS[opener] for opener in reversed(stack))
    return repaired if repaired != text else None


def parse_ai_json(content: Any, context: str = "parse_ai_json") -> Dict[str, Any]:
    """
    Parse a model response into a mapping.

    Never raises: an unrecoverable response yields an empty dict and a
    logged warning.
    """
    if isinstance(content, dict):
        return content
    if content is None or not str(content).strip():
        return {}

    content = str(content)
    text = sanitize_json_text(extract_json_text(content)).strip()

    parsed: Any = None
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        repaired = repair_truncated_json(text)
        if repaired is not None:
            try:
                parsed = json.loads(repaired)
                logger.info(f"[{context}] Repaired truncated JSON response")
            except json.JSONDecodeError:
                parsed = None
        if parsed is None:
            logger.warning(f"[{context}] Failed to parse AI response: {e} | Content preview: {content[:500]}")
            return {}

    if not isinstance(parsed, dict):
        logger.warning(f"[{context}] AI response is {type(parsed).__name__}, expected an object")
        return {}

    return parsed
