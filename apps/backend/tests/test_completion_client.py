import json
import sys
import unittest
from pathlib import Path

import httpx

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from flowai.config import Settings
from flowai.errors import CapabilityUnavailable, MalformedResponse
from flowai.llm.client import CompletionClient
from flowai.workflow.schema import ConversationTurn


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class CompletionClientTests(unittest.IsolatedAsyncioTestCase):
    def _client(self, handler, api_key="sk-test"):
        self.requests: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        settings = Settings(openrouter_api_key=api_key, openrouter_base_url="https://llm.test/api/v1")
        http = httpx.AsyncClient(transport=httpx.MockTransport(record))
        return CompletionClient(settings, http_client=http)

    async def test_structured_completion_sends_schema_and_decodes_json(self):
        client = self._client(lambda r: httpx.Response(200, json=_completion('{"isValid": false, "question": "Which?"}')))

        result = await client.request_structured_completion("prompt", {"type": "object"}, schema_name="plan_generation")

        self.assertEqual(result, {"isValid": False, "question": "Which?"})
        sent = json.loads(self.requests[0].content)
        self.assertEqual(str(self.requests[0].url), "https://llm.test/api/v1/chat/completions")
        self.assertEqual(self.requests[0].headers["Authorization"], "Bearer sk-test")
        self.assertEqual(sent["response_format"]["type"], "json_schema")
        self.assertEqual(sent["response_format"]["json_schema"]["name"], "plan_generation")
        await client.aclose()

    async def test_non_json_content_is_malformed(self):
        for content in ("not json at all", "[1, 2]"):
            client = self._client(lambda r, c=content: httpx.Response(200, json=_completion(c)))
            with self.assertRaises(MalformedResponse):
                await client.request_structured_completion("prompt", {"type": "object"})
            await client.aclose()

    async def test_missing_choices_is_malformed(self):
        client = self._client(lambda r: httpx.Response(200, json={"error": "nope"}))
        with self.assertRaises(MalformedResponse):
            await client.request_text_completion("prompt")
        await client.aclose()

    async def test_http_errors_are_capability_unavailable(self):
        for status in (401, 429, 500):
            client = self._client(lambda r, s=status: httpx.Response(s, text="boom"))
            with self.assertRaises(CapabilityUnavailable):
                await client.request_text_completion("prompt")
            await client.aclose()

    async def test_transport_errors_are_capability_unavailable(self):
        def fail(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = self._client(fail)
        with self.assertRaises(CapabilityUnavailable):
            await client.request_text_completion("prompt")
        await client.aclose()

    async def test_undecodable_body_is_capability_unavailable(self):
        def corrupt_gzip(request):
            return httpx.Response(200, headers={"content-encoding": "gzip"}, content=b"not gzip")

        client = self._client(corrupt_gzip)
        with self.assertRaises(CapabilityUnavailable):
            await client.request_text_completion("prompt")
        await client.aclose()

        client = self._client(corrupt_gzip)
        self.assertEqual(await client.request_transcription(b"x", "audio/webm"), "")
        await client.aclose()

    async def test_missing_api_key_makes_no_request(self):
        client = self._client(lambda r: httpx.Response(200, json=_completion("x")), api_key=None)
        with self.assertRaises(CapabilityUnavailable):
            await client.request_text_completion("prompt")
        self.assertEqual(self.requests, [])
        await client.aclose()

    async def test_chat_sends_structured_history(self):
        client = self._client(lambda r: httpx.Response(200, json=_completion("Use a time-driven trigger.")))
        history = [
            ConversationTurn(role="assistant", text="Hello."),
            ConversationTurn(role="user", text="How do triggers work?"),
        ]

        reply = await client.request_chat(history, "And daily ones?", system_prompt="be brief")

        self.assertEqual(reply, "Use a time-driven trigger.")
        messages = json.loads(self.requests[0].content)["messages"]
        self.assertEqual([m["role"] for m in messages], ["system", "assistant", "user", "user"])
        self.assertEqual(messages[-1]["content"], "And daily ones?")
        await client.aclose()

    async def test_transcription_sends_audio_and_never_raises(self):
        client = self._client(lambda r: httpx.Response(200, json=_completion("  hello world \n")))
        self.assertEqual(await client.request_transcription(b"\x01\x02", "audio/webm;codecs=opus"), "hello world")
        part = json.loads(self.requests[0].content)["messages"][0]["content"][0]
        self.assertEqual(part["input_audio"]["format"], "webm")
        await client.aclose()

        failing = self._client(lambda r: httpx.Response(503, text="down"))
        self.assertEqual(await failing.request_transcription(b"\x01", "audio/webm"), "")
        await failing.aclose()


if __name__ == "__main__":
    unittest.main()
