"""Tests for src/llm - HTTP backends, retry policy and form analysis.

HTTP is served by httpx.MockTransport, so no request leaves the process.
Retries run with tenacity's wait_none() to keep the suite fast.

Run after changes to: src/llm/*.py
"""

import json

import httpx
import pytest
from tenacity import wait_none

from src.constants import COST_ESTIMATE_MARGIN
from src.detection import DetectionFailure, FormContext
from src.llm import (
    AnthropicProvider,
    GroqProvider,
    LLMProviderError,
    LLMRetryableError,
    OllamaProvider,
    OpenAIProvider,
    OpenRouterProvider,
    build_provider_chain,
    get_llm_provider,
)
from src.llm.base import normalize_fields
from src.llm.html_utils import estimate_tokens
from src.llm.prompts import FORM_ANALYSIS_SYSTEM_PROMPT
from src.models import DetectedField, FieldType
from tests.fakes import NO_FORM_RESPONSE, StubProvider, form_response


CONTEXT = FormContext(url="https://alpha.example/jobs/post", board_name="Alpha Jobs", title="Python Developer")


def chat_body(content: str, prompt_tokens: int = 1000, completion_tokens: int = 200) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": prompt_tokens, "completion_tokens": completion_tokens},
    }


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def call_without_wait(provider, prompt: str = "hi", system: str = None):
    """complete_json with the provider's retry policy but no sleeping."""
    return await type(provider).complete_json.retry_with(wait=wait_none())(provider, prompt, system)


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_request_and_usage(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["payload"] = json.loads(request.content)
            return httpx.Response(200, json=chat_body('{"status": "ok"}'))

        provider = OpenAIProvider(api_key="sk-test", client=mock_client(handler))
        response = await provider.complete_json("prompt", "system")

        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["payload"]["response_format"] == {"type": "json_object"}
        assert seen["payload"]["messages"][0] == {"role": "system", "content": "system"}
        assert response.content == '{"status": "ok"}'
        assert (response.input_tokens, response.output_tokens) == (1000, 200)
        await provider.close()

    def test_api_key_required(self):
        with pytest.raises(ValueError):
            OpenAIProvider(api_key="")

    @pytest.mark.asyncio
    async def test_retries_rate_limit(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(429, text="rate limit")
            return httpx.Response(200, json=chat_body("{}"))

        provider = OpenAIProvider(api_key="k", client=mock_client(handler))
        response = await call_without_wait(provider)

        assert len(calls) == 3
        assert response.content == "{}"

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="overloaded")

        provider = OpenAIProvider(api_key="k", client=mock_client(handler))
        with pytest.raises(LLMRetryableError):
            await call_without_wait(provider)
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, text="invalid api key")

        provider = OpenAIProvider(api_key="k", client=mock_client(handler))
        with pytest.raises(LLMProviderError) as exc_info:
            await call_without_wait(provider)

        assert not isinstance(exc_info.value, LLMRetryableError)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_error_object_with_200(self):
        def handler(request):
            return httpx.Response(200, json={"error": {"message": "model not found"}})

        provider = OpenAIProvider(api_key="k", client=mock_client(handler))
        with pytest.raises(LLMProviderError, match="model not found"):
            await call_without_wait(provider)


class TestOtherBackends:
    def test_groq_defaults(self):
        provider = GroqProvider(api_key="k")
        assert provider.base_url == "https://api.groq.com/openai/v1"
        assert provider.model == "llama-3.1-8b-instant"

    @pytest.mark.asyncio
    async def test_openrouter_provider_routing(self):
        seen = {}

        def handler(request):
            seen["payload"] = json.loads(request.content)
            seen["referer"] = request.headers.get("http-referer")
            return httpx.Response(200, json=chat_body("{}"))

        provider = OpenRouterProvider(
            api_key="k",
            provider_order=["azure", "openai"],
            allow_fallbacks=False,
            client=mock_client(handler),
        )
        await provider.complete_json("p")

        assert seen["payload"]["provider"]["order"] == ["azure", "openai"]
        assert seen["payload"]["provider"]["allow_fallbacks"] is False
        assert seen["referer"]

    @pytest.mark.asyncio
    async def test_anthropic_joins_text_blocks(self):
        seen = {}

        def handler(request):
            seen["headers"] = request.headers
            return httpx.Response(200, json={
                "content": [{"type": "text", "text": '{"a": '}, {"type": "text", "text": "1}"}],
                "usage": {"input_tokens": 50, "output_tokens": 5},
            })

        provider = AnthropicProvider(api_key="k", client=mock_client(handler))
        response = await provider.complete_json("p", "s")

        assert response.content == '{"a": 1}'
        assert response.input_tokens == 50
        assert seen["headers"]["x-api-key"] == "k"
        assert seen["headers"]["anthropic-version"] == "2023-06-01"

    @pytest.mark.asyncio
    async def test_ollama_is_free(self):
        def handler(request):
            assert request.url.path == "/api/generate"
            body = json.loads(request.content)
            assert body["format"] == "json"
            return httpx.Response(200, json={
                "response": form_response(),
                "prompt_eval_count": 900,
                "eval_count": 100,
            })

        provider = OllamaProvider(client=mock_client(handler))
        analysis = await provider.analyze("<form></form>", CONTEXT, job_id="j", board_id="alpha")

        assert analysis.usage.input_tokens == 900
        assert analysis.usage.cost_usd == 0.0
        assert provider.estimate_analysis_cost("<form></form>", CONTEXT) == 0.0


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_success(self):
        provider = StubProvider()
        analysis = await provider.analyze("<form></form>", CONTEXT, job_id="j", board_id="alpha")

        assert analysis.provider == "stub"
        assert analysis.confidence == 0.9
        assert analysis.by_type(FieldType.TITLE).selector == "#job_title"
        assert analysis.usage.cost_usd == pytest.approx(0.01)
        assert analysis.usage.board_id == "alpha"
        assert analysis.usage.success is True
        assert "Python Developer" in provider.prompts[0]

    @pytest.mark.asyncio
    async def test_no_form(self):
        provider = StubProvider([NO_FORM_RESPONSE])
        with pytest.raises(DetectionFailure) as exc_info:
            await provider.analyze("<div></div>", CONTEXT)

        assert "login wall" in exc_info.value.reason
        assert exc_info.value.usage.success is False
        assert exc_info.value.usage.cost_usd == pytest.approx(0.01)

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        provider = StubProvider(['{"fields": "not a list"}'])
        with pytest.raises(DetectionFailure, match="malformed"):
            await provider.analyze("<form></form>", CONTEXT)

    @pytest.mark.asyncio
    async def test_provider_error_carries_usage(self):
        provider = StubProvider([LLMProviderError("boom")])
        with pytest.raises(DetectionFailure) as exc_info:
            await provider.analyze("<form></form>", CONTEXT)

        assert exc_info.value.usage.cost_usd == 0.0
        assert exc_info.value.usage.success is False

    @pytest.mark.asyncio
    async def test_check_connection(self):
        ok = await StubProvider(['{"status": "ok"}']).check_connection()
        assert ok["success"] is True

        failed = await StubProvider([LLMProviderError("bad key")]).check_connection()
        assert failed["success"] is False
        assert "bad key" in failed["error"]

    def test_normalize_fields_drops_duplicates_and_blanks(self):
        fields = normalize_fields([
            DetectedField(selector="#a", type="title", confidence=0.9),
            DetectedField(selector="  ", type="title", confidence=0.9),
            DetectedField(selector="#a", type="description", confidence=0.9),
            DetectedField(selector="#b", type="weird", confidence=0.2),
        ])
        assert [(f.selector, f.field_type) for f in fields] == [
            ("#a", FieldType.TITLE),
            ("#b", FieldType.OTHER),
        ]

    def test_unknown_model_uses_default_pricing(self):
        provider = OpenAIProvider(api_key="k", model="brand-new-model")
        assert provider.estimate_cost(1_000_000, 0) > 0

    def test_reservation_covers_worst_case_call(self):
        provider = OpenAIProvider(api_key="k")
        markup = "<form>" + "<input name='salary'>" * 40 + "</form>"
        prompt_tokens = estimate_tokens(FORM_ANALYSIS_SYSTEM_PROMPT) + estimate_tokens(provider.build_form_prompt(markup, CONTEXT))
        worst_case = provider.estimate_cost(prompt_tokens, provider.max_tokens)

        estimate = provider.estimate_analysis_cost(markup, CONTEXT)

        assert estimate == pytest.approx(worst_case * COST_ESTIMATE_MARGIN)
        assert estimate > worst_case


class TestFactory:
    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown"):
            get_llm_provider("nope")

    def test_claude_alias(self):
        assert isinstance(get_llm_provider("claude", api_key="k"), AnthropicProvider)

    def test_chain_skips_unconfigured(self, monkeypatch):
        from src.config import settings

        monkeypatch.setattr(settings, "groq_api_key", "gk")
        monkeypatch.setattr(settings, "openai_api_key", "")
        chain = build_provider_chain(primary="groq", fallbacks=["openai", "ollama", "groq"])

        assert [p.name for p in chain] == ["groq", "ollama"]

    def test_chain_model_applies_to_primary_only(self, monkeypatch):
        from src.config import settings

        monkeypatch.setattr(settings, "groq_api_key", "gk")
        chain = build_provider_chain(primary="groq", fallbacks=["ollama"], model="llama-3.3-70b-versatile")

        assert chain[0].model == "llama-3.3-70b-versatile"
        assert chain[1].model == OllamaProvider.DEFAULT_MODEL

    def test_empty_chain(self, monkeypatch):
        from src.config import settings

        monkeypatch.setattr(settings, "openai_api_key", "")
        with pytest.raises(ValueError):
            build_provider_chain(primary="openai", fallbacks=[])
