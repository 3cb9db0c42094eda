"""Pull the structured priority payload out of free-form model output.

The model is asked to answer with a JSON object, but replies arrive in a
few shapes: the bare object, the object inside a markdown code fence
(optionally tagged ``json``), or the object surrounded by prose. The
scanner tries, in order of precedence:

1. FENCED: the first brace-balanced ``{...}`` span inside a ``` fence.
   Fences holding no such span (empty, or prose only) are skipped.
2. BARE:   the first brace-balanced ``{...}`` span anywhere, string-literal aware.
3. NO_MATCH: nothing above was found. Nothing is guessed or repaired.

Either match is a single bracketed span, so extracting again from a
returned payload gives the same payload back.

Turning the payload into a priority is a separate step
(:func:`priority_from_payload`) that may fail on its own.
"""

import json
import logging
from typing import NamedTuple

from src.config import PRIORITY_CODES
from src.triage.models import ExtractionKind

logger = logging.getLogger(__name__)

FENCE = "```"
PRIORITY_FIELD = "priorita"


class Extraction(NamedTuple):
    kind: ExtractionKind
    payload: str | None = None


_NO_MATCH = Extraction(ExtractionKind.NO_MATCH)


def _fenced_object(text: str) -> str | None:
    """Return the object inside the first fenced block that holds one."""
    pos = 0
    while True:
        open_at = text.find(FENCE, pos)
        if open_at == -1:
            return None
        body_start = open_at + len(FENCE)
        close_at = text.find(FENCE, body_start)
        if close_at == -1:
            return None
        found = _bare_object(text[body_start:close_at])
        if found is not None:
            return found
        pos = close_at + len(FENCE)


def _bare_object(text: str) -> str | None:
    """Return the first ``{...}`` span whose braces balance, ignoring braces in strings.

    An opening brace that is never closed yields None.
    """
    start = text.find("{")
    if start == -1:
        return None

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
                return text[start : i + 1]
    return None


def extract(text: str | None) -> Extraction:
    """Locate the payload in a model reply and report how it was found."""
    if not text:
        return _NO_MATCH

    fenced = _fenced_object(text)
    if fenced is not None:
        return Extraction(ExtractionKind.FENCED, fenced)

    bare = _bare_object(text)
    if bare is not None:
        return Extraction(ExtractionKind.BARE, bare)

    return _NO_MATCH


def extract_payload(text: str | None) -> str | None:
    """Return the raw payload text, or None when the reply carries none."""
    return extract(text).payload


def priority_from_payload(payload: str | None) -> str | None:
    """Read the priority code from a payload.

    Returns None when there is no payload, it is not a JSON object, or the
    priority field is missing or outside the allowed codes. Callers fall
    back to their default priority in every one of those cases.
    """
    if payload is None:
        return None

    try:
        parsed: object = json.loads(payload)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse model payload: %s", exc)
        return None

    if not isinstance(parsed, dict):
        logger.warning("Model payload is %s, expected an object", type(parsed).__name__)
        return None

    value = parsed.get(PRIORITY_FIELD)
    if isinstance(value, bool) or not isinstance(value, str | int):
        logger.warning("Model payload has no usable %r field: %r", PRIORITY_FIELD, value)
        return None

    code = str(value).strip()
    if code not in PRIORITY_CODES:
        logger.warning("Model returned unknown priority %r", code)
        return None
    return code
