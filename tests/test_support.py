"""Tests for the oracle plumbing: history cache, model names, retries, JSON tolerance."""

import pytest
from langchain_core.messages import AIMessage, HumanMessage

from classes import llm_client
from classes.base_utils import BaseUtils
from classes.history_cache import HistoryCache
from classes.llm_client import MaxRetryErrorsException, call_with_retries_sync
from classes.model_props import is_openai_model, parse_model_name


class TestHistoryCache:

    def test_turns_are_recorded_in_order(self):
        cache = HistoryCache(ttl_seconds=60, max_tokens=4000)

        cache.append_turn("chat-a", "no sirve la tv", "¿En qué lugar?")
        cache.append_turn("chat-a", "1205", "")

        messages = cache.snapshot("chat-a")
        assert [type(m) for m in messages] == [HumanMessage, AIMessage, HumanMessage]
        assert messages[-1].content == "1205"

    def test_oldest_messages_are_dropped_over_the_cap(self):
        cache = HistoryCache(ttl_seconds=60, max_tokens=5)

        cache.append_turn("chat-a", "a" * 12, "b" * 12)

        assert [m.content for m in cache.snapshot("chat-a")] == ["b" * 12]

    def test_expired_entries_are_swept(self):
        cache = HistoryCache(ttl_seconds=0, max_tokens=4000)
        cache.append_turn("chat-a", "hola", "")

        assert cache.sweep_expired() == 1
        assert cache.snapshot("chat-a") == []

    def test_clear_one_chat(self):
        cache = HistoryCache(ttl_seconds=60, max_tokens=4000)
        cache.append_turn("chat-a", "hola", "")
        cache.append_turn("chat-b", "hola", "")

        cache.clear("chat-a")

        assert cache.snapshot("chat-a") == []
        assert len(cache.snapshot("chat-b")) == 1


class TestModelNames:

    def test_plain_name(self):
        assert parse_model_name("gpt-5-mini") == ("gpt-5-mini", {})

    def test_preset_suffix(self):
        assert parse_model_name("gpt-5-mini_fast") == (
            "gpt-5-mini",
            {"text": {"verbosity": "low"}, "reasoning": {"effort": "none"}},
        )

    def test_effort_suffix(self):
        assert parse_model_name("gpt-5-mini_high") == ("gpt-5-mini", {"reasoning": {"effort": "high"}})

    def test_bad_names(self):
        with pytest.raises(ValueError):
            parse_model_name("")
        with pytest.raises(ValueError):
            parse_model_name("gpt-5-mini_turbo")

    def test_provider(self):
        assert is_openai_model("gpt-5-mini")
        assert not is_openai_model("gemini-2.5-flash")
        assert not is_openai_model(None)


class TestRetries:

    @pytest.fixture(autouse=True)
    def _reset_backoff(self, monkeypatch):
        monkeypatch.setattr(llm_client, "_wait_until", 0.0)
        monkeypatch.setattr(llm_client, "_backoff_seconds", 1.0)

    def test_success_is_returned(self):
        assert call_with_retries_sync(lambda: "ok") == "ok"

    def test_other_errors_are_not_retried(self):
        calls = []

        def fail():
            calls.append(1)
            raise RuntimeError("401 unauthorized")

        with pytest.raises(RuntimeError):
            call_with_retries_sync(fail, retries=3)
        assert len(calls) == 1

    def test_rate_limit_exhausts_attempts(self):
        def limited():
            raise RuntimeError("429 Too Many Requests")

        with pytest.raises(MaxRetryErrorsException):
            call_with_retries_sync(limited, retries=1)


class TestFaultTolerantJson:

    def test_fenced_json_with_comment(self):
        text = '```json\n{"intent": "incident" // guess\n}\n```'

        assert BaseUtils().load_fault_tolerant_json(text) == {"intent": "incident"}

    def test_truncated_json_is_repaired(self):
        assert BaseUtils().load_fault_tolerant_json('{"a": 1, "b": [1, 2') == {"a": 1, "b": [1, 2]}

    def test_format_leaves_json_braces_alone(self):
        out = BaseUtils().unsafe_string_format('Texto: {TEXT} -> {"intent": "x"}', TEXT="hola")

        assert out == 'Texto: hola -> {"intent": "x"}'
