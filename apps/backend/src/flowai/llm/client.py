"""Completion client for an OpenAI-compatible chat completions API (OpenRouter by default).

Implements the external capability the elicitation core consumes:

    request_structured_completion(prompt, schema) -> dict
    request_text_completion(prompt)               -> str
    request_chat(history, message, system_prompt) -> str
    request_transcription(audio, mime_type)       -> str   (never raises)

Transport failures surface as ``CapabilityUnavailable``; bodies that cannot
be decoded surface as ``MalformedResponse``.
"""

from __future__ import annotations

import base64
import json
import logging
from typing import TYPE_CHECKING, Any, Optional

import httpx

from ..errors import CapabilityUnavailable, FlowAIError, MalformedResponse

if TYPE_CHECKING:
    from ..config import Settings
    from ..workflow.schema import ConversationTurn

logger = logging.getLogger(__name__)

TRANSCRIPTION_INSTRUCTION = "Transcribe exactly as spoken."


class CompletionClient:
    """Thin async wrapper around ``POST {base_url}/chat/completions``."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.http = http_client or httpx.AsyncClient(timeout=settings.request_timeout)

    async def aclose(self) -> None:
        await self.http.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.settings.openrouter_api_key:
            raise CapabilityUnavailable("No API key configured for the completion service")

        url = f"{self.settings.openrouter_base_url.rstrip('/')}/chat/completions"
        headers = {"Authorization": f"Bearer {self.settings.openrouter_api_key}"}

        try:
            resp = await self.http.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise CapabilityUnavailable(f"Completion service timed out: {e}") from e
        except httpx.TransportError as e:
            raise CapabilityUnavailable(f"Completion service unreachable: {e}") from e
        except httpx.HTTPError as e:
            raise CapabilityUnavailable(f"Completion request failed: {e}") from e

        self._check_error(resp)

        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponse(f"Completion service returned non-JSON body: {e}") from e

    def _check_error(self, resp: httpx.Response) -> None:
        if resp.is_success:
            return
        if resp.status_code in (401, 403):
            reason = "authentication failed"
        elif resp.status_code == 429:
            reason = "rate limited"
        else:
            reason = f"HTTP {resp.status_code}"
        logger.warning("Completion request failed (%s): %s", reason, resp.text[:500])
        raise CapabilityUnavailable(f"Completion service {reason}")

    @staticmethod
    def _message_content(data: dict[str, Any]) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponse(f"Completion response missing message content: {e}") from e
        if content is None:
            return ""
        if not isinstance(content, str):
            raise MalformedResponse("Completion message content is not text")
        return content

    # ------------------------------------------------------------------
    # Capability calls
    # ------------------------------------------------------------------

    async def request_structured_completion(
        self,
        prompt: str,
        schema: dict[str, Any],
        *,
        model: Optional[str] = None,
        schema_name: str = "structured_response",
    ) -> dict[str, Any]:
        """Ask for a JSON object constrained to ``schema`` and return it decoded."""
        data = await self._post(
            {
                "model": model or self.settings.plan_model,
                "messages": [{"role": "user", "content": prompt}],
                "response_format": {
                    "type": "json_schema",
                    "json_schema": {"name": schema_name, "schema": schema},
                },
            }
        )
        text = self._message_content(data) or "{}"

        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("Failed to parse structured completion: %s", text[:500])
            raise MalformedResponse("AI generated an invalid format.") from e

        if not isinstance(decoded, dict):
            raise MalformedResponse("AI generated an invalid format.")
        return decoded

    async def request_text_completion(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        data = await self._post({"model": model or self.settings.script_model, "messages": messages})
        return self._message_content(data)

    async def request_chat(
        self,
        history: list[ConversationTurn],
        message: str,
        *,
        system_prompt: str,
        model: Optional[str] = None,
    ) -> str:
        """Multi-turn chat; ``history`` is sent as structured messages."""
        messages: list[dict[str, Any]] = [{"role": "system", "content": system_prompt}]
        for turn in history:
            messages.append({"role": turn.role, "content": turn.text})
        messages.append({"role": "user", "content": message})

        data = await self._post({"model": model or self.settings.assistant_model, "messages": messages})
        return self._message_content(data)

    async def request_transcription(self, audio: bytes, mime_type: str) -> str:
        """Best-effort speech-to-text. Returns an empty string on any failure."""
        audio_format = mime_type.split(";", 1)[0].split("/")[-1].strip() or "webm"
        payload = {
            "model": self.settings.transcription_model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "input_audio",
                            "input_audio": {
                                "data": base64.b64encode(audio).decode("ascii"),
                                "format": audio_format,
                            },
                        },
                        {"type": "text", "text": TRANSCRIPTION_INSTRUCTION},
                    ],
                }
            ],
        }

        try:
            data = await self._post(payload)
            return self._message_content(data).strip()
        except FlowAIError as e:
            logger.warning("Transcription failed (%s): %s", e.error_type, e)
            return ""
        except Exception:
            logger.exception("Transcription failed unexpectedly")
            return ""
