import json
import unittest
from pathlib import Path

import requests

from eduquest.ai.cancellation import CancelSignal
from eduquest.ai.credentials import Credential
from eduquest.ai.errors import (
    MalformedResponseError,
    OperationCancelled,
    ProviderError,
    RateLimitedError,
    UnsupportedFeatureError,
)
from llm_gateway import (
    GeminiNativeAdapter,
    InlineBlob,
    LLMGateway,
    OpenAIChatAdapter,
    UnifiedLLMRequest,
    parse_data_url,
    parse_llm_json,
    to_gemini_schema,
)


class _FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.text = json.dumps(payload)

    def raise_for_status(self):
        if self.status_code >= 400:
            err = requests.HTTPError(f"HTTP {self.status_code}")
            err.response = self
            raise err

    def json(self):
        return self._payload


class _FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.posts = []
        self.closed = 0

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        return self.responses.pop(0)

    def close(self):
        self.closed += 1


GEMINI = Credential("primary-user", "gemini", "g-secret", "User's Gemini Key")
OPENAI = Credential("secondary-user", "openai", "o-secret", "User's OpenAI Key")

QUESTIONS_SCHEMA = {
    "type": "array",
    "items": {"type": "object", "properties": {"text": {"type": "string"}}, "required": ["text"]},
}


def _gemini_body(text, grounding=None):
    candidate = {"content": {"parts": [{"text": text}]}, "finishReason": "STOP"}
    if grounding:
        candidate["groundingMetadata"] = {"groundingChunks": grounding}
    return {"candidates": [candidate], "usageMetadata": {"totalTokenCount": 12}}


def _openai_body(content):
    return {"choices": [{"message": {"content": content}, "finish_reason": "stop"}], "usage": {"total_tokens": 9}}


class TestLLMGateway(unittest.TestCase):
    def setUp(self):
        self.registry_path = Path(__file__).resolve().parents[1] / "config" / "model_registry.yaml"

    def _gateway(self, session):
        return LLMGateway(self.registry_path, session_factory=lambda: session)

    def test_registry_loads(self):
        gateway = LLMGateway(self.registry_path)
        self.assertIn("providers", gateway.registry)
        self.assertIn("defaults", gateway.registry)
        self.assertTrue(gateway.supports("gemini", "documents"))
        self.assertFalse(gateway.supports("openai", "documents"))
        self.assertFalse(gateway.supports("unknown", "documents"))

    def test_resolve_target_headers_and_timeouts(self):
        gateway = LLMGateway(self.registry_path)
        gemini = gateway.resolve_target(GEMINI)
        self.assertEqual(gemini.headers["x-goog-api-key"], "g-secret")
        self.assertEqual(gemini.timeout_sec, (10.0, 120.0))
        self.assertEqual(gemini.model_for("pro"), "gemini-2.5-pro")
        self.assertEqual(gemini.model_for("missing-tier"), "gemini-2.5-flash")

        openai = gateway.resolve_target(OPENAI)
        self.assertEqual(openai.headers["Authorization"], "Bearer o-secret")
        self.assertEqual(openai.options["image_size"], "1024x1024")

    def test_adapter_for_picks_adapter_by_mode(self):
        gateway = self._gateway(_FakeSession([]))
        self.assertIsInstance(gateway.adapter_for(GEMINI), GeminiNativeAdapter)
        self.assertIsInstance(gateway.adapter_for(OPENAI), OpenAIChatAdapter)

    def test_unknown_provider_is_unsupported(self):
        gateway = LLMGateway(self.registry_path)
        with self.assertRaises(UnsupportedFeatureError):
            gateway.adapter_for(Credential("primary-user", "claude", "k", "Other"))

    def test_gemini_structured_request_payload(self):
        session = _FakeSession([_FakeResponse(200, _gemini_body('[{"text": "Q1"}]'))])
        adapter = self._gateway(session).adapter_for(GEMINI)
        req = UnifiedLLMRequest(
            prompt="make questions",
            images=[InlineBlob("image/png", "AAAA")],
            json_schema=QUESTIONS_SCHEMA,
            temperature=0.2,
        )
        resp = adapter.generate(req)

        self.assertEqual(resp.data, [{"text": "Q1"}])
        post = session.posts[0]
        self.assertTrue(post["url"].endswith("/models/gemini-2.5-flash:generateContent"))
        parts = post["json"]["contents"][0]["parts"]
        self.assertEqual(parts[0], {"text": "make questions"})
        self.assertEqual(parts[1], {"inlineData": {"mimeType": "image/png", "data": "AAAA"}})
        config = post["json"]["generationConfig"]
        self.assertEqual(config["responseMimeType"], "application/json")
        self.assertEqual(config["responseSchema"]["type"], "ARRAY")
        self.assertEqual(config["temperature"], 0.2)

    def test_gemini_search_grounding_drops_schema_and_parses_fenced_json(self):
        chunks = [{"web": {"uri": "https://example.org", "title": "Example"}}]
        body = _gemini_body('Here you go:\n```json\n[{"text": "Q1"}]\n```', grounding=chunks)
        session = _FakeSession([_FakeResponse(200, body)])
        adapter = self._gateway(session).adapter_for(GEMINI)
        resp = adapter.generate(UnifiedLLMRequest(prompt="p", json_schema=QUESTIONS_SCHEMA, use_search=True))

        payload = session.posts[0]["json"]
        self.assertEqual(payload["tools"], [{"google_search": {}}])
        self.assertNotIn("generationConfig", payload)
        self.assertEqual(resp.data, [{"text": "Q1"}])
        self.assertEqual(resp.grounding_chunks, chunks)

    def test_gemini_without_candidates_is_malformed(self):
        body = {"promptFeedback": {"blockReason": "SAFETY"}}
        adapter = self._gateway(_FakeSession([_FakeResponse(200, body)])).adapter_for(GEMINI)
        with self.assertRaises(MalformedResponseError):
            adapter.generate(UnifiedLLMRequest(prompt="p"))

    def test_gemini_unparseable_json_is_malformed(self):
        adapter = self._gateway(_FakeSession([_FakeResponse(200, _gemini_body("not json"))])).adapter_for(GEMINI)
        with self.assertRaises(MalformedResponseError):
            adapter.generate(UnifiedLLMRequest(prompt="p", json_schema=QUESTIONS_SCHEMA))

    def test_gemini_image_generation(self):
        body = {"predictions": [{"bytesBase64Encoded": "iVBOR"}]}
        session = _FakeSession([_FakeResponse(200, body)])
        adapter = self._gateway(session).adapter_for(GEMINI)
        self.assertEqual(adapter.generate_image("a labelled cell"), "iVBOR")
        self.assertTrue(session.posts[0]["url"].endswith("/models/imagen-4.0-generate-001:predict"))
        self.assertEqual(session.posts[0]["json"]["instances"], [{"prompt": "a labelled cell"}])

    def test_gemini_empty_image_is_malformed(self):
        adapter = self._gateway(_FakeSession([_FakeResponse(200, {"predictions": []})])).adapter_for(GEMINI)
        with self.assertRaises(MalformedResponseError):
            adapter.generate_image("x")

    def test_http_429_surfaces_as_rate_limited(self):
        body = {"error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "message": "quota"}}
        adapter = self._gateway(_FakeSession([_FakeResponse(429, body)])).adapter_for(GEMINI)
        with self.assertRaises(RateLimitedError) as ctx:
            adapter.generate(UnifiedLLMRequest(prompt="p"))
        self.assertEqual(ctx.exception.status_code, 429)

    def test_http_500_surfaces_as_provider_error(self):
        adapter = self._gateway(_FakeSession([_FakeResponse(500, {"error": {"message": "boom"}})])).adapter_for(OPENAI)
        with self.assertRaises(ProviderError):
            adapter.generate(UnifiedLLMRequest(prompt="p"))

    def test_openai_json_object_mode_unwraps_key(self):
        session = _FakeSession([_FakeResponse(200, _openai_body('{"subjects": ["Physics", "Life Science"]}'))])
        adapter = self._gateway(session).adapter_for(OPENAI)
        resp = adapter.generate(
            UnifiedLLMRequest(prompt="list subjects", json_schema={"type": "array"}, wrap_key="subjects")
        )
        self.assertEqual(resp.data, ["Physics", "Life Science"])
        payload = session.posts[0]["json"]
        self.assertEqual(payload["model"], "gpt-4o-mini")
        self.assertEqual(payload["response_format"], {"type": "json_object"})
        self.assertEqual(payload["temperature"], 0.5)
        self.assertIn('single key "subjects"', payload["messages"][0]["content"])
        self.assertTrue(session.posts[0]["url"].endswith("/chat/completions"))

    def test_openai_missing_wrap_key_yields_empty_list(self):
        session = _FakeSession([_FakeResponse(200, _openai_body('{"other": 1}'))])
        adapter = self._gateway(session).adapter_for(OPENAI)
        resp = adapter.generate(UnifiedLLMRequest(prompt="p", json_schema={"type": "array"}, wrap_key="chapters"))
        self.assertEqual(resp.data, [])

    def test_openai_images_use_vision_model_and_data_urls(self):
        session = _FakeSession([_FakeResponse(200, _openai_body("answer"))])
        adapter = self._gateway(session).adapter_for(OPENAI)
        resp = adapter.generate(UnifiedLLMRequest(prompt="explain", images=[InlineBlob("image/jpeg", "BBBB")]))
        self.assertEqual(resp.text, "answer")
        payload = session.posts[0]["json"]
        self.assertEqual(payload["model"], "gpt-4o")
        content = payload["messages"][0]["content"]
        self.assertEqual(content[0], {"type": "text", "text": "explain"})
        self.assertEqual(content[1]["image_url"]["url"], "data:image/jpeg;base64,BBBB")

    def test_openai_rejects_documents_before_any_request(self):
        session = _FakeSession([])
        adapter = self._gateway(session).adapter_for(OPENAI)
        req = UnifiedLLMRequest(prompt="extract", documents=[InlineBlob("application/pdf", "JVBER")])
        with self.assertRaises(UnsupportedFeatureError):
            adapter.generate(req)
        self.assertEqual(session.posts, [])

    def test_openai_image_generation(self):
        session = _FakeSession([_FakeResponse(200, {"data": [{"b64_json": "iVBOR"}]})])
        adapter = self._gateway(session).adapter_for(OPENAI)
        self.assertEqual(adapter.generate_image("diagram"), "iVBOR")
        payload = session.posts[0]["json"]
        self.assertEqual(payload["model"], "dall-e-3")
        self.assertEqual(payload["response_format"], "b64_json")

    def test_cancel_closes_session_and_blocks_requests(self):
        session = _FakeSession([_FakeResponse(200, _gemini_body("late"))])
        cancel = CancelSignal()
        adapter = self._gateway(session).adapter_for(GEMINI, cancel)
        cancel.cancel()
        self.assertEqual(session.closed, 1)
        with self.assertRaises(OperationCancelled):
            adapter.generate(UnifiedLLMRequest(prompt="p"))
        self.assertEqual(session.posts, [])

    def test_reply_after_cancel_is_discarded(self):
        cancel = CancelSignal()
        session = _FakeSession([_FakeResponse(200, _gemini_body("late"))])
        real_post = session.post

        def _post_then_cancel(*args, **kwargs):
            resp = real_post(*args, **kwargs)
            cancel.cancel("timed out")
            return resp

        session.post = _post_then_cancel
        adapter = self._gateway(session).adapter_for(GEMINI, cancel)
        with self.assertRaises(OperationCancelled):
            adapter.generate(UnifiedLLMRequest(prompt="p"))
        self.assertEqual(len(session.posts), 1)

    def test_close_detaches_from_cancel_signal(self):
        session = _FakeSession([])
        cancel = CancelSignal()
        adapter = self._gateway(session).adapter_for(GEMINI, cancel)
        adapter.close()
        cancel.cancel()
        self.assertEqual(session.closed, 1)


class TestJsonHelpers(unittest.TestCase):
    def test_parse_llm_json_direct_and_fenced(self):
        self.assertEqual(parse_llm_json('{"a": 1}'), {"a": 1})
        self.assertEqual(parse_llm_json("```json\n[1, 2]\n```"), [1, 2])
        self.assertEqual(parse_llm_json("prefix ```\n{\"b\": 2}\n``` suffix"), {"b": 2})
        self.assertIsNone(parse_llm_json("no json here"))
        self.assertIsNone(parse_llm_json(""))

    def test_to_gemini_schema_uppercases_types(self):
        schema = to_gemini_schema(QUESTIONS_SCHEMA)
        self.assertEqual(schema["type"], "ARRAY")
        self.assertEqual(schema["items"]["type"], "OBJECT")
        self.assertEqual(schema["items"]["properties"]["text"]["type"], "STRING")
        self.assertEqual(schema["items"]["required"], ["text"])

    def test_parse_data_url(self):
        blob = parse_data_url("data:image/png;base64,AAAA")
        self.assertEqual((blob.mime_type, blob.data), ("image/png", "AAAA"))
        self.assertEqual(blob.to_data_url(), "data:image/png;base64,AAAA")
        with self.assertRaises(ValueError):
            parse_data_url("not-a-data-url")


if __name__ == "__main__":
    unittest.main()
