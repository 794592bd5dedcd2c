# convo/services/summarization_gateway.py
"""
Summarization Gateway: turns a room transcript into a Gemini request and the
reply back into a Summary.

The chat model is injected; anything with an async ``ainvoke(prompt)``
returning an object with ``.content`` works (LangChain chat models do).
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Iterable, List, Protocol, Sequence

from langchain_google_genai import ChatGoogleGenerativeAI

from convo.core.exceptions import GatewayError
from convo.core.logging import get_logger
from convo.models.models import Message, Summary

logger = get_logger(__name__)


PROMPT_TEMPLATE = """You are analyzing a conversation between two users in a chat room. Please provide a structured summary in the following JSON format:

{{
  "summary": "A concise overall summary of the conversation (2-3 sentences)",
  "keyPoints": ["Key point 1", "Key point 2", "Key point 3"],
  "actionItems": ["Action item 1 (if any)", "Action item 2 (if any)"]
}}

If there are no action items, return an empty array for "actionItems".

Conversation:
{transcript}

Please respond with ONLY valid JSON, no additional text or markdown formatting."""


class ChatModel(Protocol):
    async def ainvoke(self, input: Any, **kwargs: Any) -> Any:
        ...


def format_transcript(messages: Sequence[Message]) -> str:
    """One line per message, chronological: ``[timestamp] author: text``."""
    if not messages:
        return "No messages in this conversation."
    lines = []
    for msg in messages:
        stamp = datetime.fromtimestamp(msg.timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        lines.append(f"[{stamp}] {msg.author}: {msg.text}")
    return "\n".join(lines)


def build_prompt(messages: Sequence[Message]) -> str:
    return PROMPT_TEMPLATE.format(transcript=format_transcript(messages))


def _reply_text(reply: Any) -> str:
    # Gemini replies may come back as a list of content parts
    content = getattr(reply, "content", reply)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    raise GatewayError(f"Unexpected reply type from summarizer: {type(content).__name__}")


def strip_wrapping(text: str) -> str:
    """Remove markdown code fences and chatter around the JSON object."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
        cleaned = cleaned.strip()

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start != -1 and end > start:
        cleaned = cleaned[start:end + 1]
    return cleaned


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item if isinstance(item, str) else json.dumps(item) for item in value if item is not None]


def parse_summary(text: str, message_count: int) -> Summary:
    """
    Parse the collaborator's reply.

    Partial replies are fine (missing fields get empty defaults); only a
    reply with no JSON object at all is an error.

    Raises:
        GatewayError: reply is not a JSON object
    """
    try:
        data = json.loads(strip_wrapping(text))
    except json.JSONDecodeError as exc:
        raise GatewayError("Failed to generate summary. Please try again.") from exc
    if not isinstance(data, dict):
        raise GatewayError("Failed to generate summary. Please try again.")

    overview = data.get("summary")
    available = isinstance(overview, str) and bool(overview.strip())
    return Summary(
        overview=overview.strip() if available else "",
        overview_available=available,
        key_points=_string_list(data.get("keyPoints")),
        action_items=_string_list(data.get("actionItems")),
        message_count=message_count,
    )


class SummarizationGateway:
    """Adapter between room transcripts and the external chat model."""

    def __init__(self, llm: ChatModel):
        self.llm = llm

    async def summarize(self, messages: Iterable[Message]) -> Summary:
        """
        Summarize a transcript. Never retries.

        Raises:
            GatewayError: the model call failed or its reply was unusable
        """
        messages = list(messages)
        prompt = build_prompt(messages)
        try:
            reply = await self.llm.ainvoke(prompt)
        except Exception as exc:
            logger.error("Summarizer call failed: %s", exc)
            raise GatewayError("Failed to generate summary. Please try again.") from exc

        summary = parse_summary(_reply_text(reply), message_count=len(messages))
        logger.info(
            "Summary parsed: %d key points, %d action items",
            len(summary.key_points),
            len(summary.action_items),
        )
        return summary


def build_gateway(settings) -> SummarizationGateway:
    """Build the gateway backed by Gemini through LangChain."""
    llm = ChatGoogleGenerativeAI(
        model=settings.GEMINI_MODEL,
        google_api_key=settings.GEMINI_API_KEY,
        temperature=0.3,
    )
    return SummarizationGateway(llm)
