from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterator

from .errors import ParseError

logger = logging.getLogger(__name__)

FENCED_BLOCK = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?(.*?)```", re.DOTALL)

_CLOSERS = {"[": "]", "{": "}"}


@dataclass(frozen=True)
class ParseResult:
    payload: dict[str, Any] | None
    ok: bool
    strategy: str

    def unwrap(self) -> dict[str, Any]:
        if not self.ok or self.payload is None:
            raise ParseError("model response could not be parsed")
        return self.payload


def parse_model_response(raw: str | None) -> ParseResult:
    """Recover structured data from free-form model output.

    Strategies, in order: first top-level array (wrapped as
    ``{"sections": [...]}``), first top-level object, then the same two
    after re-encoding backtick-delimited values as JSON strings.
    """
    if not raw or not raw.strip():
        return ParseResult(payload=None, ok=False, strategy="empty")

    text = strip_code_fences(raw)

    payload, kind = _first_candidate(text)
    if payload is not None:
        return ParseResult(payload=payload, ok=True, strategy=kind)

    repaired = repair_backtick_fields(text)
    if repaired != text:
        payload, kind = _first_candidate(repaired)
        if payload is not None:
            logger.info("Recovered model response with backtick repair", extra={"strategy": kind})
            return ParseResult(payload=payload, ok=True, strategy=f"repaired_{kind}")

    logger.warning(
        "Model response could not be parsed",
        extra={"response_length": len(raw), "response_head": raw[:200]},
    )
    return ParseResult(payload=None, ok=False, strategy="failed")


def reserialize(result: ParseResult) -> str:
    if not result.ok or result.payload is None:
        raise ParseError("nothing to serialize")
    return json.dumps(result.payload, ensure_ascii=False)


def strip_code_fences(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        newline = text.find("\n")
        text = text[newline + 1 :] if newline != -1 else text[3:]
        text = text.rstrip()
        if text.endswith("```"):
            text = text[:-3]
        return text.strip()

    match = FENCED_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    return text


def _first_candidate(text: str) -> tuple[dict[str, Any] | None, str]:
    spans = list(iter_top_level_spans(text))

    for start, end in spans:
        if text[start] != "[":
            continue
        parsed = _loads(text[start:end])
        if isinstance(parsed, list) and _looks_like_records(parsed):
            return {"sections": parsed}, "array"

    for start, end in spans:
        if text[start] != "{":
            continue
        parsed = _loads(text[start:end])
        if isinstance(parsed, dict):
            return parsed, "object"

    return None, "failed"


def _looks_like_records(items: list[Any]) -> bool:
    return not items or any(isinstance(item, dict) for item in items)


def _loads(candidate: str) -> Any:
    try:
        return json.loads(candidate, strict=False)
    except ValueError:
        return None


def iter_top_level_spans(text: str) -> Iterator[tuple[int, int]]:
    """Yield (start, end) of balanced bracket groups not nested in another group.

    Quotes are only tracked inside a group, so prose around the JSON does not
    confuse the matcher.
    """
    index = 0
    length = len(text)
    while index < length:
        if text[index] not in _CLOSERS:
            index += 1
            continue

        end = _match_group(text, index)
        if end is None:
            index += 1
            continue
        yield index, end
        index = end


def _match_group(text: str, start: int) -> int | None:
    stack = [_CLOSERS[text[start]]]
    in_string = False
    escaped = False
    for position in range(start + 1, len(text)):
        char = text[position]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _CLOSERS:
            stack.append(_CLOSERS[char])
        elif char in ("]", "}"):
            if char != stack[-1]:
                return None
            stack.pop()
            if not stack:
                return position + 1
    return None


def repair_backtick_fields(text: str) -> str:
    """Re-encode `...` values found outside JSON strings as JSON strings."""
    out: list[str] = []
    in_string = False
    escaped = False
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if in_string:
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            index += 1
            continue

        if char == '"':
            in_string = True
            out.append(char)
            index += 1
            continue

        if char == "`":
            if text.startswith("```", index):
                index += 3
                continue
            closing = text.find("`", index + 1)
            if closing == -1:
                out.append(text[index:])
                break
            out.append(json.dumps(text[index + 1 : closing], ensure_ascii=False))
            index = closing + 1
            continue

        out.append(char)
        index += 1
    return "".join(out)


__all__ = [
    "ParseResult",
    "parse_model_response",
    "reserialize",
    "strip_code_fences",
    "iter_top_level_spans",
    "repair_backtick_fields",
]
