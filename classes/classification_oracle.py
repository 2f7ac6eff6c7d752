# classes/classification_oracle.py
import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Any, Callable, List, Optional, TypeVar

from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from pydantic import ValidationError

from classes.base_utils import BaseUtils
from classes.errors import OracleError, OracleResponseError, OracleTimeoutError
from classes.llm_client import build_llms_for_model
from classes.oracle_contracts import (
    AreaGuess,
    EditInstruction,
    FeedbackClassification,
    SplitIncident,
    TopLevelResult,
    TurnResult,
    parse_oracle_payload,
)
from classes.oracle_prompts import (
    AREA_PROMPT,
    EDIT_PROMPT,
    FEEDBACK_PROMPT,
    FEEDBACK_SYSTEM_PROMPT,
    SPLIT_PROMPT,
    TOP_LEVEL_PROMPT,
    TURN_PROMPT,
)
from classes.settings import ORACLE_MODEL, ORACLE_RETRIES, ORACLE_TIMEOUT_SECONDS, PROJECT_ID, REGION

logger = logging.getLogger("vicebot_backend")

T = TypeVar("T")

# Shared by every oracle instance; a timed-out call keeps its worker until the
# HTTP client gives up, the caller does not wait for it.
_ORACLE_POOL = ThreadPoolExecutor(max_workers=8, thread_name_prefix="oracle")


def _history_as_text(history: Optional[List[Any]], limit: int = 8) -> str:
    lines = []
    for m in (history or [])[-limit:]:
        who = "bot" if isinstance(m, AIMessage) else "user"
        lines.append(f"{who}: {getattr(m, 'content', m)}")
    return "\n".join(lines) or "(none)"


class ClassificationOracle(BaseUtils):
    """
    The text -> structured JSON capability. Every answer is validated against
    its purpose contract before it leaves this class; any failure surfaces as
    an OracleError so callers can fall back to their local heuristics.
    """

    def __init__(
        self,
        llm=None,
        chat_llm=None,
        *,
        model_name: str = ORACLE_MODEL,
        timeout_seconds: float = ORACLE_TIMEOUT_SECONDS,
        retries: int = ORACLE_RETRIES,
        build_clients: bool = True,
    ):
        if llm is None and chat_llm is None and build_clients:
            llm, chat_llm = build_llms_for_model(
                model_name,
                vertex_project=PROJECT_ID,
                vertex_region=REGION,
                timeout=timeout_seconds,
            )
        self.llm = llm
        self.chat_llm = chat_llm
        self.timeout_seconds = float(timeout_seconds)
        self.retries = retries

    @property
    def available(self) -> bool:
        return self.llm is not None

    # -----------------------
    # Plumbing
    # -----------------------

    def _bounded(self, fn: Callable[[], T], purpose: str) -> T:
        started = time.monotonic()
        future = _ORACLE_POOL.submit(fn)
        try:
            return future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError as e:
            future.cancel()
            raise OracleTimeoutError(
                f"Oracle '{purpose}' timed out after {time.monotonic() - started:.2f}s"
            ) from e
        except OracleError:
            raise
        except Exception as e:
            raise OracleError(f"Oracle '{purpose}' call failed: {e}") from e

    def _parse(self, purpose: str, raw: str):
        try:
            data = self.load_fault_tolerant_json(self.clean_triple_backticks(raw).strip())
        except ValueError as e:
            raise OracleResponseError(f"Oracle '{purpose}' returned malformed JSON") from e
        try:
            result = parse_oracle_payload(purpose, data)
        except ValidationError as e:
            raise OracleResponseError(f"Oracle '{purpose}' payload failed validation: {e}") from e
        logger.debug(f"oracle {purpose} -> {json.dumps(result.model_dump(), ensure_ascii=False)}")
        return result

    def _ask(self, purpose: str, prompt: str):
        if self.llm is None:
            raise OracleError("Oracle is not configured")
        raw = self._bounded(lambda: self.llm.invoke(prompt, retries=self.retries), purpose)
        return self._parse(purpose, raw)

    def _ask_chat(self, purpose: str, messages: List[Any]):
        if self.chat_llm is None:
            if self.llm is None:
                raise OracleError("Oracle is not configured")
            flat = "\n\n".join(str(getattr(m, "content", m)) for m in messages)
            return self._ask(purpose, flat)
        raw = self._bounded(lambda: self.chat_llm.invoke(messages, retries=self.retries), purpose)
        return self._parse(purpose, raw)

    # -----------------------
    # Purposes
    # -----------------------

    def classify_top_level(self, text: str, context: Optional[dict] = None) -> TopLevelResult:
        prompt = self.unsafe_string_format(
            TOP_LEVEL_PROMPT,
            TEXT=text,
            CONTEXT=json.dumps(context or {}, ensure_ascii=False),
        )
        return self._ask("top_level", prompt)

    def classify_turn(self, text: str, focus: str, draft_summary: str, history: Optional[List[Any]] = None) -> TurnResult:
        prompt = self.unsafe_string_format(
            TURN_PROMPT,
            TEXT=text,
            FOCUS=focus,
            DRAFT_SUMMARY=draft_summary or "(empty)",
            HISTORY=_history_as_text(history),
        )
        return self._ask("turn", prompt)

    def classify_feedback(
        self,
        text: str,
        role_hint: str,
        ticket_summary: str,
        history: Optional[List[Any]] = None,
    ) -> FeedbackClassification:
        messages: List[Any] = [SystemMessage(content=FEEDBACK_SYSTEM_PROMPT)]
        messages.extend(history or [])
        messages.append(HumanMessage(content=self.unsafe_string_format(
            FEEDBACK_PROMPT,
            ROLE_HINT=role_hint or "unknown",
            TICKET_SUMMARY=ticket_summary or "(unknown)",
            TEXT=text,
        )))
        return self._ask_chat("feedback", messages)

    def split_incidents(self, text: str) -> List[SplitIncident]:
        result = self._ask("split", self.unsafe_string_format(SPLIT_PROMPT, TEXT=text))
        return list(result.incidents)

    def interpret_edit(self, text: str, draft_summary: str) -> EditInstruction:
        prompt = self.unsafe_string_format(EDIT_PROMPT, TEXT=text, DRAFT_SUMMARY=draft_summary or "(empty)")
        return self._ask("edit", prompt)

    def detect_area(self, text: str) -> AreaGuess:
        return self._ask("area", self.unsafe_string_format(AREA_PROMPT, TEXT=text))
