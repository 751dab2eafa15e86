from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import httpx
import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ai.habit_planner import HabitPlanner, PlanFormatError, parse_plan  # noqa: E402
from ai.providers import AIProvider, AIProviderError, OpenAIProvider, get_provider  # noqa: E402
from ai.providers.openai_provider import token_limit_field, with_other_token_field  # noqa: E402
from services.errors import ExternalServiceError  # noqa: E402


def _reply(duration, titles) -> str:
    return json.dumps({"duration": duration, "dailyTasks": [{"dayTitle": t, "completed": False} for t in titles]})


class _ScriptedProvider(AIProvider):
    DEFAULT_MODEL = "fake-model"

    def __init__(self, replies, api_key: str = "sk-test"):
        super().__init__(api_key)
        self.replies = list(replies)
        self.calls: list[dict] = []

    async def chat(self, messages, model, system="", json_response=False, temperature=None):
        self.calls.append({"messages": messages, "model": model, "system": system, "json": json_response})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return {"content": reply, "tokens_in": 10, "tokens_out": 20, "model": model}


def _planner(provider: AIProvider, attempts: int = 3) -> HabitPlanner:
    return HabitPlanner(provider, max_attempts=attempts, backoff_seconds=0)


def test_parse_plan_accepts_matching_reply():
    plan = parse_plan(_reply(3, ["a", "b", "c"]), "Read")
    assert plan.duration == 3
    assert plan.day_titles == ["a", "b", "c"]


def test_parse_plan_strips_markdown_fence():
    content = "```json\n" + _reply(2, ["a", "b"]) + "\n```"
    assert parse_plan(content, "Read").day_titles == ["a", "b"]


def test_parse_plan_pads_short_task_lists():
    plan = parse_plan(_reply(4, ["a", "b"]), "Read")
    assert plan.day_titles == ["a", "b", "Day 3: Read", "Day 4: Read"]


def test_parse_plan_truncates_long_task_lists_to_requested_duration():
    plan = parse_plan(_reply(5, ["a", "b", "c", "d", "e"]), "Read", requested_duration=2)
    assert plan.duration == 2
    assert plan.day_titles == ["a", "b"]


def test_parse_plan_clamps_model_chosen_duration():
    plan = parse_plan(_reply(500, ["a"]), "Read")
    assert plan.duration == 365
    assert len(plan.day_titles) == 365


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        "[]",
        json.dumps({"duration": 3}),
        json.dumps({"duration": 3, "dailyTasks": []}),
        json.dumps({"duration": "soon", "dailyTasks": [{"dayTitle": "a"}]}),
        json.dumps({"duration": 0, "dailyTasks": [{"dayTitle": "a"}]}),
    ],
)
def test_parse_plan_rejects_malformed_replies(content):
    with pytest.raises(PlanFormatError):
        parse_plan(content, "Read")


def test_generate_plan_sends_fixed_duration_prompt():
    provider = _ScriptedProvider([_reply(2, ["a", "b"])])
    plan = asyncio.run(_planner(provider).generate_plan("Read", "build", 2))

    assert plan.duration == 2
    call = provider.calls[0]
    assert call["json"] is True
    assert call["model"] == "fake-model"
    assert "Create a 2-day habit plan" in call["messages"][0]["content"]
    assert "habit formation expert" in call["system"]


def test_generate_plan_retries_malformed_then_succeeds():
    provider = _ScriptedProvider(["oops", AIProviderError("upstream down", status_code=502), _reply(1, ["a"])])
    plan = asyncio.run(_planner(provider).generate_plan("Read", "quit"))

    assert plan.day_titles == ["a"]
    assert len(provider.calls) == 3
    assert "between 21 and 90 days" in provider.calls[0]["messages"][0]["content"]


def test_generate_plan_gives_up_after_max_attempts():
    provider = _ScriptedProvider(["bad", "bad", "bad", _reply(1, ["never reached"])])
    with pytest.raises(ExternalServiceError):
        asyncio.run(_planner(provider, attempts=3).generate_plan("Read", "build", 1))
    assert len(provider.calls) == 3


def test_generate_plan_does_not_retry_client_errors():
    provider = _ScriptedProvider([AIProviderError("bad key", status_code=401), _reply(1, ["a"])])
    with pytest.raises(ExternalServiceError):
        asyncio.run(_planner(provider).generate_plan("Read", "build", 1))
    assert len(provider.calls) == 1


def test_generate_plan_without_api_key_fails_fast():
    provider = _ScriptedProvider([_reply(1, ["a"])], api_key="")
    with pytest.raises(ExternalServiceError):
        asyncio.run(_planner(provider).generate_plan("Read", "build", 1))
    assert provider.calls == []


def test_provider_error_transience():
    assert AIProviderError("timeout").transient
    assert AIProviderError("rate", status_code=429).transient
    assert AIProviderError("server", status_code=503).transient
    assert not AIProviderError("key", status_code=401).transient


def test_get_provider_builds_openai_provider():
    provider = get_provider("openai", api_key="sk-x", model="gpt-4o", base_url="http://localhost:9/v1/chat")
    assert isinstance(provider, OpenAIProvider)
    assert provider.get_model() == "gpt-4o"
    assert provider.base_url == "http://localhost:9/v1/chat"
    with pytest.raises(ValueError):
        get_provider("nope", api_key="x")


# ─── OpenAI provider over a mocked transport ───


def _completion(content: str) -> dict:
    return {
        "model": "gpt-4o-mini",
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 34},
    }


def test_openai_provider_sends_json_mode_request():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        assert request.headers["Authorization"] == "Bearer sk-test"
        return httpx.Response(200, json=_completion(_reply(1, ["a"])))

    provider = OpenAIProvider("sk-test", transport=httpx.MockTransport(handler))
    result = asyncio.run(
        provider.chat([{"role": "user", "content": "plan"}], "gpt-4o-mini", system="be brief", json_response=True)
    )

    assert result == {"content": _reply(1, ["a"]), "tokens_in": 12, "tokens_out": 34, "model": "gpt-4o-mini"}
    body = seen[0]
    assert body["messages"][0] == {"role": "system", "content": "be brief"}
    assert body["response_format"] == {"type": "json_object"}
    assert body["max_tokens"] == OpenAIProvider.DEFAULT_MAX_COMPLETION_TOKENS


def test_openai_provider_retries_with_other_token_field():
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        seen.append(body)
        if "max_tokens" in body:
            return httpx.Response(400, text="Unsupported parameter: 'max_tokens'. Use 'max_completion_tokens'.")
        return httpx.Response(200, json=_completion("{}"))

    provider = OpenAIProvider("sk-test", transport=httpx.MockTransport(handler))
    result = asyncio.run(provider.chat([{"role": "user", "content": "plan"}], "gpt-4o"))

    assert result["content"] == "{}"
    assert len(seen) == 2
    assert "max_completion_tokens" in seen[1] and "max_tokens" not in seen[1]


def test_openai_provider_uses_completion_tokens_for_reasoning_models():
    assert token_limit_field("o3-mini") == "max_completion_tokens"
    assert token_limit_field("gpt-4.1") == "max_completion_tokens"
    assert token_limit_field("gpt-4o-mini") == "max_tokens"
    assert with_other_token_field({"max_completion_tokens": 5}) == {"max_tokens": 5}


def test_openai_provider_maps_http_errors():
    provider = OpenAIProvider(
        "sk-test",
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="overloaded")),
    )
    with pytest.raises(AIProviderError) as exc_info:
        asyncio.run(provider.chat([{"role": "user", "content": "plan"}], "gpt-4o-mini"))
    assert exc_info.value.status_code == 503
    assert exc_info.value.transient

    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = OpenAIProvider("sk-test", transport=httpx.MockTransport(refuse))
    with pytest.raises(AIProviderError) as exc_info:
        asyncio.run(provider.chat([{"role": "user", "content": "plan"}], "gpt-4o-mini"))
    assert exc_info.value.status_code is None
