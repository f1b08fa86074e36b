"""
One chat turn of the organizer agent.

handle_turn() is the only entry point the HTTP layer needs:
assemble context -> build prompt -> complete -> parse -> dispatch -> compose.
Actions from one reply run sequentially, so later actions see the effects of
earlier ones (create "X" then mark "X" done works in a single turn).
"""
import logging
from typing import AsyncIterator, Optional, Union

from action_parser import parse_actions
from completion import CompletionError, CompletionProvider, get_completion_provider
from context import assemble_context
from dispatcher import ActionDispatcher
from models import ActionOutcome, ActionResult, AgentAction, Message, TurnResult
from prompts import build_system_prompt

logger = logging.getLogger(__name__)

NO_ACTIONS_MESSAGE = "Done."


def build_messages(message: str, history: list[Union[Message, dict]], system_prompt: str) -> list[dict]:
    """System prompt, prior turns, then the new user message."""
    messages = [{"role": "system", "content": system_prompt}]
    for entry in history:
        if isinstance(entry, dict):
            entry = Message(**entry)
        messages.append({"role": entry.role, "content": entry.content})
    messages.append({"role": "user", "content": message})
    return messages


def _format_summary(period: str, data: dict) -> str:
    stats = data["stats"]
    lines = [
        f"Here's your {period}'s summary:",
        "",
        f"- Total items: {stats['total']}",
        f"- Completed: {stats['completed']}",
        f"- In progress: {stats['in_progress']}",
        f"- Not started: {stats['not_started']}",
        f"- Overdue: {stats['overdue']}",
        "",
    ]
    upcoming = data.get("upcoming_due") or []
    if upcoming:
        lines.append("Upcoming:")
        lines.extend(f"- {item.title} ({item.due_at[:10]})" for item in upcoming)
    else:
        lines.append("No upcoming deadlines.")
    return "\n".join(lines)


def _format_analytics(data: dict) -> str:
    overview = data["overview"]
    lines = [
        f"Your last {data['days']} days:",
        "",
        f"- Created: {overview['created']}",
        f"- Completed: {overview['completed']} ({overview['completion_rate']}%)",
        f"- Currently overdue: {overview['overdue']}",
    ]
    open_by_priority = ", ".join(f"{count} {level}" for level, count in data["by_priority"].items() if count)
    if open_by_priority:
        lines.append(f"- Open by priority: {open_by_priority}")
    for item in data["overdue_items"]:
        lines.append(f"- Overdue: {item['title']} ({item['days_overdue']} days)")
    return "\n".join(lines)


def _format_items(items: list) -> str:
    if not items:
        return "No items found."
    return f"Found {len(items)} item(s):\n\n" + "\n".join(
        f"- [{i.type}] {i.title} ({i.status}, {i.priority})" for i in items
    )


def build_response_message(actions: list[AgentAction], results: list[ActionResult]) -> str:
    """Compose the reply text shown to the user, one paragraph per action."""
    parts = []
    for action, result in zip(actions, results):
        if action.type == "respond":
            parts.append(action.data.message)
        elif not result.success:
            parts.append(f"Failed: {result.message}")
        elif action.type == "get_summary" and result.data:
            parts.append(_format_summary(action.data.period, result.data))
        elif action.type == "get_analytics" and result.data:
            parts.append(_format_analytics(result.data))
        elif action.type in ("list_items", "search_items") and result.data is not None:
            parts.append(_format_items(result.data))
        else:
            parts.append(result.message)

    text = "\n\n".join(p for p in parts if p)
    return text or NO_ACTIONS_MESSAGE


def _outcome(action: AgentAction, result: ActionResult) -> ActionOutcome:
    return ActionOutcome(type=action.type, success=result.success, message=result.message, data=result.data)


def _dispatch_all(actions: list[AgentAction], user_id: str, dispatcher: ActionDispatcher) -> list[ActionResult]:
    results = []
    for action in actions:
        result = dispatcher.execute(action, user_id)
        logger.info("action %s -> %s", action.type, "ok" if result.success else result.message)
        results.append(result)
    return results


async def handle_turn(
    message: str,
    history: list[Union[Message, dict]],
    user_id: str,
    provider: Optional[CompletionProvider] = None,
    dispatcher: Optional[ActionDispatcher] = None,
) -> TurnResult:
    """Run one user message through the agent and return the composed reply."""
    provider = provider or get_completion_provider()
    dispatcher = dispatcher or ActionDispatcher()

    context = assemble_context(user_id, now=dispatcher.clock())
    messages = build_messages(message, history, build_system_prompt(context))

    try:
        reply = await provider.complete(messages)
    except CompletionError as e:
        logger.error("completion failed (%s): %s", provider.name, e)
        return TurnResult(response=f"Sorry, I couldn't reach the assistant right now. {e}")
    logger.debug("model reply: %s", reply)

    actions = parse_actions(reply)
    results = _dispatch_all(actions, user_id, dispatcher)

    return TurnResult(
        response=build_response_message(actions, results),
        actions=[_outcome(a, r) for a, r in zip(actions, results)],
        navigate=next((r.navigate for r in results if r.navigate), None),
    )


async def stream_turn(
    message: str,
    history: list[Union[Message, dict]],
    user_id: str,
    provider: Optional[CompletionProvider] = None,
    dispatcher: Optional[ActionDispatcher] = None,
) -> AsyncIterator[dict]:
    """
    Streaming variant of handle_turn. Yields event dicts:
    start, text (reply chunks as they arrive), action (one per executed
    action), then done with the composed reply. A provider failure yields
    a single error event instead of done.
    """
    provider = provider or get_completion_provider()
    dispatcher = dispatcher or ActionDispatcher()

    yield {"type": "start", "provider": provider.name}

    context = assemble_context(user_id, now=dispatcher.clock())
    messages = build_messages(message, history, build_system_prompt(context))

    chunks = []
    try:
        async for chunk in provider.stream(messages):
            chunks.append(chunk)
            yield {"type": "text", "content": chunk}
    except CompletionError as e:
        logger.error("streaming completion failed (%s): %s", provider.name, e)
        yield {"type": "error", "error": str(e)}
        return

    actions = parse_actions("".join(chunks))
    results = []
    for action in actions:
        result = dispatcher.execute(action, user_id)
        results.append(result)
        outcome = _outcome(action, result).model_dump(mode="json")
        # The outcome's own "type" is the action name; the event tag must win
        yield {**outcome, "action_type": outcome["type"], "type": "action"}

    yield {
        "type": "done",
        "response": build_response_message(actions, results),
        "navigate": next((r.navigate for r in results if r.navigate), None),
    }
