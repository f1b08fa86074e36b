"""
Turn a model reply into typed agent actions.

Model output is unreliable: prose around the JSON, code fences, truncated
arrays, invented action names. parse_actions() never raises; anything it
can't map onto AgentAction becomes a respond action so the user still gets
a reply.
"""
import json
import logging
import re
from typing import Any

from pydantic import TypeAdapter, ValidationError

from models import AgentAction, RespondAction, RespondData

logger = logging.getLogger(__name__)

# First array or object literal, greedy to the last closing bracket
JSON_PATTERN = re.compile(r"\[[\s\S]*\]|\{[\s\S]*\}")

_action_adapter = TypeAdapter(AgentAction)


class ExtractionError(ValueError):
    """No structured payload could be recovered from the text."""


def extract_structured(text: str) -> Any:
    """
    Best-effort extraction of the first JSON value embedded in free text.
    Raises ExtractionError when there is no bracketed literal or it isn't valid JSON.
    """
    match = JSON_PATTERN.search(text or "")
    if not match:
        raise ExtractionError("no JSON literal found")
    try:
        return json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise ExtractionError(f"invalid JSON: {e}") from e
    except RecursionError as e:
        raise ExtractionError("JSON nested too deeply") from e


def respond(message: str) -> RespondAction:
    return RespondAction(data=RespondData(message=message))


def _to_action(element: Any) -> AgentAction:
    if isinstance(element, dict) and isinstance(element.get("action"), str) and isinstance(element.get("data"), dict):
        candidate = {"type": element["action"], "data": element["data"]}
    elif isinstance(element, dict) and "type" in element and "data" in element:
        candidate = element
    else:
        return respond(json.dumps(element))

    try:
        return _action_adapter.validate_python(candidate)
    except ValidationError as e:
        logger.info("unusable action %r: %s", candidate.get("type"), e.errors()[0]["msg"] if e.errors() else e)
        return respond(json.dumps(element))


def parse_actions(text: str) -> list[AgentAction]:
    """Parse a reply into an ordered, non-empty list of actions."""
    text = text if isinstance(text, str) else ""
    try:
        parsed = extract_structured(text)
    except ExtractionError as e:
        logger.debug("treating reply as plain message: %s", e)
        return [respond(text)]

    elements = parsed if isinstance(parsed, list) else [parsed]
    if not elements:
        return [respond(text)]
    actions = []
    for element in elements:
        try:
            actions.append(_to_action(element))
        except RecursionError:
            logger.info("reply element nested too deeply, keeping it as text")
            actions.append(respond(text))
    return actions
