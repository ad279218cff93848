"""FlowAI assistant: free-form help chat about Apps Script automation."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .errors import EmptyInput

if TYPE_CHECKING:
    from .llm.client import CompletionClient
    from .workflow.schema import ConversationTurn

logger = logging.getLogger(__name__)

ASSISTANT_SYSTEM_PROMPT = (
    "You are FlowAI, a helpful assistant for Google Apps Script automation. "
    "Be technical, helpful, and concise."
)


async def chat_with_assistant(
    client: CompletionClient,
    history: list[ConversationTurn],
    message: str,
) -> str:
    """Answer ``message`` given the prior chat ``history``. Stateless; the caller keeps history."""
    text = message.strip()
    if not text:
        raise EmptyInput("Message is empty")

    reply = await client.request_chat(history, text, system_prompt=ASSISTANT_SYSTEM_PROMPT)
    logger.debug("Assistant replied with %d characters", len(reply))
    return reply
