"""
Chat completion backends.

Every provider takes the same role-tagged message list and returns free text
in the agent's JSON action grammar. The rule-based provider keeps the agent
usable when no API key is configured.
"""
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import AsyncIterator

import anthropic
import openai

import config

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """The completion backend failed to produce a reply."""


class CompletionProvider(ABC):
    name = "base"

    @abstractmethod
    async def complete(self, messages: list[dict]) -> str:
        raise NotImplementedError

    async def stream(self, messages: list[dict]) -> AsyncIterator[str]:
        """Yield the reply in chunks. Providers without streaming yield it whole."""
        yield await self.complete(messages)


class AnthropicCompletion(CompletionProvider):
    name = "anthropic"

    def __init__(self, api_key: str, model: str = config.ANTHROPIC_MODEL, max_tokens: int = config.MAX_TOKENS):
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens

    @staticmethod
    def _split_system(messages: list[dict]) -> tuple[str, list[dict]]:
        system = next((m["content"] for m in messages if m["role"] == "system"), "")
        chat = [{"role": m["role"], "content": m["content"]} for m in messages if m["role"] != "system"]
        return system, chat

    async def complete(self, messages: list[dict]) -> str:
        system, chat = self._split_system(messages)
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=chat,
            )
        except anthropic.APIError as e:
            raise CompletionError(f"Claude API error: {e}") from e
        return response.content[0].text if response.content else ""

    async def stream(self, messages: list[dict]) -> AsyncIterator[str]:
        system, chat = self._split_system(messages)
        try:
            async with self.client.messages.stream(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system,
                messages=chat,
            ) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.APIError as e:
            raise CompletionError(f"Claude API error: {e}") from e


class OpenAICompletion(CompletionProvider):
    name = "openai"

    def __init__(self, api_key: str, model: str = config.OPENAI_MODEL, max_tokens: int = config.MAX_TOKENS):
        self.client = openai.AsyncOpenAI(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens

    async def complete(self, messages: list[dict]) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as e:
            raise CompletionError(f"OpenAI API error: {e}") from e
        return response.choices[0].message.content or ""

    async def stream(self, messages: list[dict]) -> AsyncIterator[str]:
        try:
            chunks = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                stream=True,
            )
            async for chunk in chunks:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.OpenAIError as e:
            raise CompletionError(f"OpenAI API error: {e}") from e


# Keyword rules used when no model is configured
CREATE_TRIGGER = re.compile(
    r"\b(?:create|add)\b|\bnew\s+(?:task|meeting|item|school|homework|assignment)",
    re.IGNORECASE,
)
CREATE_PATTERN = re.compile(
    r"\b(?:create|add|new)\b\s+(?:an?\s+)?(?:task|meeting|item|school\s+item)?\s*(?:called|named|:)?\s*[\"']?([^\"'\n]+)[\"']?",
    re.IGNORECASE,
)
COMPLETE_PATTERN = re.compile(
    r"(?:mark|set)\s+[\"']?(.+?)[\"']?\s+(?:as\s+)?(?:done|complete|completed|finished)\b",
    re.IGNORECASE,
)

HELP_MESSAGE = (
    "I'm here to help you organize your tasks, meetings, and school work. You can ask me to:\n\n"
    "- Create a new task, meeting, or school item\n"
    "- Show your current tasks or summary\n"
    "- Mark items as complete\n"
    "- Reschedule or prioritize items\n"
    "- Navigate to different sections\n\n"
    "What would you like to do?"
)


def _infer_type(text: str) -> str:
    if "meeting" in text:
        return "meeting"
    if "school" in text or "study" in text or "homework" in text:
        return "school"
    return "task"


class RuleBasedCompletion(CompletionProvider):
    name = "rules"

    async def complete(self, messages: list[dict]) -> str:
        user_message = next((m["content"] for m in reversed(messages) if m["role"] == "user"), "")
        return json.dumps(self.reply(user_message))

    def reply(self, message: str) -> dict:
        lower = message.lower()

        if CREATE_TRIGGER.search(message):
            match = CREATE_PATTERN.search(message)
            title = match.group(1).strip() if match and match.group(1).strip() else "New Item"
            return {
                "action": "create_item",
                "data": {"title": title, "type": _infer_type(lower), "priority": "medium"},
            }

        if any(word in lower for word in ("complete", "done", "finish")):
            match = COMPLETE_PATTERN.search(message)
            if match:
                return {"action": "mark_complete", "data": {"itemIds": [match.group(1).strip()]}}
            return {
                "action": "respond",
                "data": {
                    "message": "I can help you mark items as complete. Could you tell me which specific task "
                               "you'd like to complete? You can say something like 'mark [task name] as done'.",
                },
            }

        if any(word in lower for word in ("summary", "overview", "status")):
            period = "today"
            if "week" in lower:
                period = "week"
            elif "month" in lower:
                period = "month"
            return {"action": "get_summary", "data": {"period": period}}

        if any(word in lower for word in ("analytics", "stats", "productivity")):
            return {"action": "get_analytics", "data": {"days": 30 if "month" in lower else 7}}

        if "focus" in lower:
            return {"action": "start_focus", "data": {"duration": 25}}

        if any(word in lower for word in ("list", "show", "what")):
            data: dict = {"limit": 10}
            if "task" in lower:
                data["type"] = "task"
            if "meeting" in lower:
                data["type"] = "meeting"
            if "school" in lower:
                data["type"] = "school"
            return {"action": "list_items", "data": data}

        if any(word in lower for word in ("go to", "navigate", "open")):
            to = "/dashboard"
            for keyword, path in (
                ("task", "/tasks"), ("meeting", "/meetings"), ("school", "/school"),
                ("inbox", "/inbox"), ("schedule", "/schedule"),
            ):
                if keyword in lower:
                    to = path
            return {"action": "navigate", "data": {"to": to}}

        return {"action": "respond", "data": {"message": HELP_MESSAGE}}


def get_completion_provider() -> CompletionProvider:
    """Anthropic first, then OpenAI, then the keyword rules."""
    if config.key_configured(config.ANTHROPIC_API_KEY):
        return AnthropicCompletion(config.ANTHROPIC_API_KEY)
    if config.key_configured(config.OPENAI_API_KEY):
        return OpenAICompletion(config.OPENAI_API_KEY)
    logger.info("No completion provider configured, using rule-based fallback")
    return RuleBasedCompletion()
