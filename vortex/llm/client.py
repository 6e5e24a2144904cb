"""Parsing helpers for raw backend text.

Backends are told to return bare JSON for structured tasks, but they
sometimes wrap it in ```json fences anyway.
"""

import json
from typing import Any

from pydantic import TypeAdapter

from vortex.errors import BackendError, ErrorKind
from vortex.llm.schemas import LineExplanation

_explanations_adapter = TypeAdapter(list[LineExplanation])


def parse_llm_json_response(raw_text: str) -> Any:
    """Parse JSON from an LLM response, handling markdown code fences.

    Args:
        raw_text: Raw text from the backend

    Returns:
        Parsed JSON value (dict, list, ...)

    Raises:
        json.JSONDecodeError: If the text cannot be parsed as JSON
    """
    content = raw_text.strip()

    # Strip leading markdown fence (```json or ```)
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]

    # Strip trailing fence
    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]

    return json.loads(content.strip())


def parse_explanations(raw_text: str) -> list[LineExplanation]:
    """Parse an explain response into LineExplanation items.

    Accepts a bare JSON array or an object with an "explanations" array.

    Raises:
        json.JSONDecodeError: Not JSON at all
        pydantic.ValidationError: JSON, but items do not match LineExplanation
        BackendError: JSON of the wrong shape, or an empty list
    """
    data = parse_llm_json_response(raw_text)
    if isinstance(data, dict) and isinstance(data.get("explanations"), list):
        data = data["explanations"]
    if not isinstance(data, list):
        raise BackendError(
            ErrorKind.INVALID_RESPONSE,
            f"Expected a JSON array of explanations, got {type(data).__name__}",
        )
    if not data:
        raise BackendError(ErrorKind.INVALID_RESPONSE, "Empty explanation list")
    return _explanations_adapter.validate_python(data)
