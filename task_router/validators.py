"""Structural validators for model output.

Every public function here returns a ValidationOutcome; nothing raises.
Normalization is a pure text transform kept apart from parsing so it can be
exercised on malformed input in isolation.
"""

from __future__ import annotations

import json
import re
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import best_match

from task_router.models import Expect, SchemaName, ValidationOutcome

_FENCE_OPEN = re.compile(r"^```[\w+-]*[^\S\n]*\n?")
_FENCE_CLOSE = re.compile(r"\n?[^\S\n]*```\s*$")
_TRAILING_COMMA = re.compile(r",\s*([}\]])")

_DIAGRAM_BLOCK = re.compile(r"```mermaid[^\n]*\n(.*?)```", re.DOTALL | re.IGNORECASE)
_ANY_BLOCK = re.compile(r"```[^\n]*\n(.*?)```", re.DOTALL)
_NODE_LINE = re.compile(r"^[A-Za-z0-9_]+")

DIAGRAM_TYPES = (
    "graph",
    "flowchart",
    "sequencediagram",
    "classdiagram",
    "statediagram",
    "erdiagram",
    "journey",
    "gantt",
    "pie",
    "mindmap",
    "timeline",
)
CONNECTORS = ("-->", "---", "-.->", "==>", "->")
# Tokens that mark an untagged fenced block as diagram markup.
_DIAGRAM_HINTS = ("graph", "flowchart", "-->", "---")

_STRING = {"type": "string"}
_NUMBER = {"type": "number"}

_QUIZ_ITEM = {
    "type": "object",
    "required": ["q", "choices", "correctIndex", "explanation"],
    "properties": {
        "q": _STRING,
        "choices": {"type": "array", "items": _STRING, "minItems": 4, "maxItems": 4},
        "correctIndex": _NUMBER,
        "explanation": _STRING,
    },
}

JSON_SCHEMAS: dict[SchemaName, dict[str, Any]] = {
    SchemaName.MODULES: {
        "type": "object",
        "required": ["modules"],
        "properties": {
            "modules": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["id", "title", "summary"],
                    "properties": {"id": _STRING, "title": _STRING, "summary": _STRING},
                },
            },
        },
    },
    SchemaName.ASSIGNMENTS: {
        "type": "object",
        "required": ["assignments"],
        "properties": {
            "assignments": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["chunk_id", "module_id", "confidence"],
                    "properties": {
                        "chunk_id": _STRING,
                        "module_id": _STRING,
                        "confidence": _NUMBER,
                    },
                },
            },
        },
    },
    # Callers use either a bare array or {"items": [...]}.
    SchemaName.QUIZ: {
        "anyOf": [
            {"type": "array", "items": _QUIZ_ITEM},
            {
                "type": "object",
                "required": ["items"],
                "properties": {"items": {"type": "array", "items": _QUIZ_ITEM}},
            },
        ],
    },
    SchemaName.OVERVIEW: {
        "type": "object",
        "required": ["overview"],
        "properties": {"overview": _STRING},
    },
}

_VALIDATORS = {name: Draft202012Validator(schema) for name, schema in JSON_SCHEMAS.items()}


def strip_fence(text: str) -> str:
    """Remove one surrounding Markdown code fence, if present."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN.sub("", cleaned, count=1)
        cleaned = _FENCE_CLOSE.sub("", cleaned, count=1)
    return cleaned.strip()


def normalize_json_text(text: str) -> str:
    """Strip a Markdown code fence and drop trailing commas."""
    return _TRAILING_COMMA.sub(r"\1", strip_fence(text)).strip()


def parse_json(text: str) -> ValidationOutcome:
    """Valid JSON is parsed untouched; trailing-comma cleanup only runs on text that fails."""
    try:
        return ValidationOutcome.success(json.loads(strip_fence(text)))
    except json.JSONDecodeError:
        cleaned = normalize_json_text(text)
    try:
        return ValidationOutcome.success(json.loads(cleaned))
    except json.JSONDecodeError as e:
        return ValidationOutcome.failure(f"Invalid JSON: {e}")


def validate(text: str, schema: SchemaName | str) -> ValidationOutcome:
    """Normalize, parse and structurally check text against a named schema."""
    try:
        name = SchemaName(schema)
    except ValueError:
        return ValidationOutcome.failure(f"Unknown schema: {schema}")

    if name is SchemaName.DIAGRAM:
        return validate_diagram(text)

    parsed = parse_json(text)
    if not parsed.ok:
        return parsed

    error = best_match(_VALIDATORS[name].iter_errors(parsed.data))
    if error is not None:
        where = "/".join(str(p) for p in error.absolute_path) or "<root>"
        return ValidationOutcome.failure(f"{name.value} invalid at {where}: {error.message}")
    return parsed


def validate_text(text: str) -> ValidationOutcome:
    if isinstance(text, str) and text.strip():
        return ValidationOutcome.success(text)
    return ValidationOutcome.failure("Empty response")


def extract_diagram(text: str) -> ValidationOutcome:
    """Pull diagram source out of the first suitable fenced block."""
    text = text or ""
    tagged = _DIAGRAM_BLOCK.search(text)
    if tagged:
        code = tagged.group(1).strip()
        if not code:
            return ValidationOutcome.failure("Empty diagram code block")
        return ValidationOutcome.success(code)

    for match in _ANY_BLOCK.finditer(text):
        code = match.group(1).strip()
        if code and any(hint in code for hint in _DIAGRAM_HINTS):
            return ValidationOutcome.success(code)

    return ValidationOutcome.failure("No diagram code block found")


def check_diagram_syntax(code: str) -> ValidationOutcome:
    lines = [line.strip() for line in (code or "").splitlines() if line.strip()]
    if not lines:
        return ValidationOutcome.failure("Empty diagram")

    header = lines[0].lower()
    if not header.startswith(DIAGRAM_TYPES):
        return ValidationOutcome.failure("Missing diagram type declaration")

    # Connectors may share the header line ("graph LR; A-->B").
    has_connector = any(token in line for line in lines for token in CONNECTORS)
    has_node = any(_NODE_LINE.match(line) for line in lines[1:])
    if not has_connector and not has_node:
        return ValidationOutcome.failure("No nodes or connections found")

    return ValidationOutcome.success(code)


def validate_diagram(text: str) -> ValidationOutcome:
    extracted = extract_diagram(text)
    if not extracted.ok:
        return extracted
    return check_diagram_syntax(extracted.data)


def check_output(
    text: str,
    expect: Expect,
    schema: SchemaName | str | None = None,
) -> ValidationOutcome:
    """Validate text for the caller's expected shape."""
    expect = Expect(expect)
    if text is not None and not isinstance(text, str):
        return ValidationOutcome.failure(f"Expected text output, got {type(text).__name__}")
    if expect is Expect.MERMAID:
        return validate_diagram(text)
    if expect is Expect.JSON:
        return validate(text, schema) if schema is not None else parse_json(text)
    return validate_text(text)
