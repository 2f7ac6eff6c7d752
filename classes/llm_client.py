# classes/llm_client.py
import logging
import random
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from openai import OpenAI
from langchain_google_vertexai import VertexAI, ChatVertexAI
from langchain_core.messages import AIMessage, SystemMessage

from classes.model_props import parse_model_name, is_openai_model

logger = logging.getLogger("vicebot_backend")

T = TypeVar("T")


class MaxRetryErrorsException(Exception):
    pass


# Process-wide 429 backoff. Oracle calls are latency bound, so the ceiling is
# low; the caller's own deadline cuts a call that waits longer than that.
_backoff_lock = threading.Lock()
_wait_until = 0.0
_backoff_seconds = 1.0
_BACKOFF_MAX = 8.0


def _is_rate_limited(e: Exception) -> bool:
    msg = str(e)
    return "429" in msg or "RESOURCE_EXHAUSTED" in msg or "Too Many Requests" in msg


def _register_rate_limit() -> float:
    global _wait_until, _backoff_seconds
    with _backoff_lock:
        delay = random.uniform(_backoff_seconds * 0.9, _backoff_seconds * 1.3)
        _backoff_seconds = min(_backoff_seconds * 2, _BACKOFF_MAX)
        _wait_until = max(_wait_until, time.monotonic() + delay)
        return delay


def _wait_for_backoff() -> None:
    while True:
        with _backoff_lock:
            wait = _wait_until - time.monotonic()
        if wait <= 0:
            return
        time.sleep(min(wait, 0.5))


def call_with_retries_sync(fn: Callable[[], T], *, retries: int = 2, label: str = "LLM") -> T:
    """
    Only rate limits are retried. Any other failure (bad request, auth,
    timeout) is raised at once so the oracle can fall back.
    """
    global _backoff_seconds
    last_exception: Exception | None = None

    for attempt in range(max(1, retries)):
        _wait_for_backoff()
        try:
            result = fn()
            with _backoff_lock:
                _backoff_seconds = max(1.0, _backoff_seconds * 0.5)
            return result
        except Exception as e:
            if not _is_rate_limited(e):
                raise
            last_exception = e
            delay = _register_rate_limit()
            logger.warning(f"[{label}-RETRY] attempt {attempt + 1} rate limited, backing off ~{delay:.1f}s: {e}")

    raise MaxRetryErrorsException(f"All {retries} attempts were rate limited.") from last_exception


class _ProviderClient:
    """
    One model, either Vertex (through langchain) or OpenAI (Responses API).
    Subclasses only decide what an input looks like for each provider.
    """

    vertex_class: Any = VertexAI
    label = "LLM"

    def __init__(self, model_name: str, *, vertex_project: str, vertex_region: str, timeout: float | None = None):
        self.provider = "openai" if is_openai_model(model_name) else "vertex"
        self.model_name = model_name
        self._openai_params: Dict[str, Any] = {}
        self._vertex = None
        self._client: Optional[OpenAI] = None

        if self.provider == "vertex":
            self._vertex = self.vertex_class(
                project=vertex_project,
                location=vertex_region,
                model_name=model_name,
                timeout=timeout,
                temperature=0,
            )
        else:
            self.model_name, self._openai_params = parse_model_name(model_name)
            client_kwargs: Dict[str, Any] = {"max_retries": 0}
            if timeout is not None:
                client_kwargs["timeout"] = timeout
            self._client = OpenAI(**client_kwargs)

    def _openai_input(self, value: Any) -> Any:
        return value

    def _invoke_once(self, value: Any) -> str:
        if self._vertex is not None:
            resp = self._vertex.invoke(value)
            return resp if isinstance(resp, str) else str(getattr(resp, "content", resp))

        resp = self._client.responses.create(
            model=self.model_name,
            input=self._openai_input(value),
            **self._openai_params,
        )
        return (getattr(resp, "output_text", "") or "").strip()

    def invoke(self, value: Any, *, retries: int = 2) -> str:
        return call_with_retries_sync(lambda: self._invoke_once(value), retries=retries, label=self.label)


class LlmClient(_ProviderClient):
    """Completion style: text = llm.invoke("prompt")."""


class ChatLlmClient(_ProviderClient):
    """Chat style: text = chat_llm.invoke([SystemMessage(...), HumanMessage(...)])."""

    vertex_class = ChatVertexAI
    label = "CHAT-LLM"

    def _openai_input(self, messages: List[Any]) -> List[Dict[str, str]]:
        out: List[Dict[str, str]] = []
        for m in messages:
            if isinstance(m, SystemMessage):
                role = "developer"
            elif isinstance(m, AIMessage):
                role = "assistant"
            else:
                role = "user"
            out.append({"role": role, "content": str(m.content)})
        return out


def build_llms_for_model(
    model_name: str,
    *,
    vertex_project: str,
    vertex_region: str,
    timeout: float | None = None,
) -> Tuple[Optional[LlmClient], Optional[ChatLlmClient]]:
    """
    Completion and chat clients for one model name.
    Returns (None, None) when the provider cannot be set up (missing credentials, bad model name).
    """
    try:
        llm = LlmClient(model_name, vertex_project=vertex_project, vertex_region=vertex_region, timeout=timeout)
        chat_llm = ChatLlmClient(model_name, vertex_project=vertex_project, vertex_region=vertex_region, timeout=timeout)
        return llm, chat_llm
    except Exception as e:
        logger.info(f"Warning: Could not initialize LLMs for {model_name}: {e}. ")
        return None, None
