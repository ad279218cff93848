"""In-memory stand-in for CompletionClient used across the test suite."""

import asyncio


class FakeCompletionClient:
    """Replays queued responses. Queue items that are exceptions are raised instead."""

    def __init__(self, structured=None, text=None, chat=None, transcription=""):
        self.structured_responses = list(structured or [])
        self.text_responses = list(text or [])
        self.chat_responses = list(chat or [])
        self.transcription = transcription
        self.calls: list[str] = []
        self.prompts: list[str] = []
        self.chat_requests: list[tuple[list, str]] = []
        self.gate: asyncio.Event | None = None  # when set, calls wait for it

    async def _next(self, queue):
        if self.gate is not None:
            await self.gate.wait()
        item = queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def request_structured_completion(self, prompt, schema, *, model=None, schema_name="structured_response"):
        self.calls.append("structured")
        self.prompts.append(prompt)
        return await self._next(self.structured_responses)

    async def request_text_completion(self, prompt, *, model=None, system_prompt=None):
        self.calls.append("text")
        self.prompts.append(prompt)
        return await self._next(self.text_responses)

    async def request_chat(self, history, message, *, system_prompt, model=None):
        self.calls.append("chat")
        self.chat_requests.append((list(history), message))
        return await self._next(self.chat_responses)

    async def request_transcription(self, audio, mime_type):
        self.calls.append("transcription")
        if self.gate is not None:
            await self.gate.wait()
        return self.transcription

    async def aclose(self):
        return None


INVOICE_PLAN = {
    "name": "Invoice Notifier",
    "description": "Notifies about new invoice emails",
    "steps": [
        {"id": "1", "action": "Poll Gmail for label Invoices", "service": "Gmail"},
    ],
}

ACCEPTED_RESPONSE = {"isValid": True, "plan": INVOICE_PLAN}

CLARIFICATION_RESPONSE = {
    "isValid": False,
    "question": "Which email provider, and how often should this check run?",
}
