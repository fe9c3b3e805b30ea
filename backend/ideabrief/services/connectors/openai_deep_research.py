# backend/ideabrief/services/connectors/openai_deep_research.py

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional

from openai import OpenAI

from .base import BaseResearchProvider, ResearchProviderError, ResearchProviderStatus
from ..llm import get_deep_research_client
from ..llm_costs import build_token_usage
from ...core.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_PROOF_SIGNAL_DISCLAIMER = (
    "Generated using OpenAI Deep Research. Validate sources manually."
)

RESEARCH_SYSTEM_PROMPT = """\
Find 5-10 proof signals for this startup idea using web search. Return ONLY valid JSON:
{
  "proofSignals": [
    {"description": "finding", "evidence": "details", "sources": ["https://..."]}
  ],
  "summary": "2 sentence overview",
  "marketStage": "emerging|growth|saturated"
}"""

_RUNNING_STATES = {"queued", "in_progress"}
_FAILED_STATES = {"failed", "cancelled", "incomplete"}
_URL_RE = re.compile(r"https?://\S+")
_FENCED_JSON_RE = re.compile(r"```json([\s\S]*?)```", re.IGNORECASE)


def _attr(source: Any, key: str) -> Any:
    if source is None:
        return None
    if isinstance(source, dict):
        return source.get(key)
    return getattr(source, key, None)


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def extract_output_text(response: Any) -> str:
    """Join every `output_text` block of the response's message items."""
    collected: List[str] = []
    for item in _attr(response, "output") or []:
        if _attr(item, "type") != "message":
            continue
        for block in _attr(item, "content") or []:
            text = _attr(block, "text")
            if _attr(block, "type") == "output_text" and isinstance(text, str):
                collected.append(text.strip())
    return "\n".join(collected).strip()


def extract_usage(response: Any, model: str | None = None) -> Optional[Dict[str, Any]]:
    usage_obj = _attr(response, "usage")
    if usage_obj is None:
        return None

    web_search_calls = sum(
        1 for item in _attr(response, "output") or [] if _attr(item, "type") == "web_search_call"
    )
    total = _attr(usage_obj, "total_tokens")
    return build_token_usage(
        _attr(response, "model") or model,
        input_tokens=_as_int(_attr(usage_obj, "input_tokens")),
        output_tokens=_as_int(_attr(usage_obj, "output_tokens")),
        total_tokens=_as_int(total) if total is not None else None,
        cached_input_tokens=_as_int(
            _attr(_attr(usage_obj, "input_tokens_details"), "cached_tokens")
        ),
        reasoning_output_tokens=_as_int(
            _attr(_attr(usage_obj, "output_tokens_details"), "reasoning_tokens")
        ),
        web_search_calls=web_search_calls,
    )


def _load_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """
    Robustly extract a JSON object from model output: fenced ```json blocks,
    bare objects, or an object embedded in surrounding prose.
    """
    candidates = []
    fenced = _FENCED_JSON_RE.search(raw)
    if fenced:
        candidates.append(fenced.group(1).strip())
    candidates.append(raw.strip())
    start = raw.find("{")
    end = raw.rfind("}")
    if start != -1 and end > start:
        candidates.append(raw[start : end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def detect_market_stage(summary: str) -> str:
    s = summary.lower()
    if "early" in s or "emerging" in s:
        return "emerging"
    if "growth" in s:
        return "growth"
    if "crowded" in s or "saturated" in s:
        return "saturated"
    return "unknown"


def _signals_from_prose(text: str) -> List[Dict[str, Any]]:
    signals: List[Dict[str, Any]] = []
    for line in text.split("\n"):
        urls = _URL_RE.findall(line)
        if not urls:
            continue
        signals.append(
            {
                "description": line.replace(urls[0], "").strip(),
                "evidence": line.strip(),
                "sources": urls,
            }
        )
    return signals


def _clean_signal(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        return None
    description = str(raw.get("description") or "").strip()
    if not description:
        return None
    sources = raw.get("sources") or []
    if not isinstance(sources, list):
        sources = [sources]
    signal = {
        "description": description,
        "evidence": str(raw.get("evidence") or "").strip(),
        "sources": [str(s).strip() for s in sources if str(s).strip()],
    }
    if raw.get("disclaimer"):
        signal["disclaimer"] = str(raw["disclaimer"])
    return signal


def parse_research_text(text: str) -> Dict[str, Any]:
    """
    Parse deep-research output into a proof-signal bundle.

    JSON output is preferred; prose falls back to URL-bearing lines as
    signals and the first paragraph as summary.
    """
    data = _load_json_object(text)
    if data is not None:
        signals = [s for s in (_clean_signal(r) for r in data.get("proofSignals") or []) if s]
        summary = str(data.get("summary") or "").strip()
        market_stage = str(data.get("marketStage") or "").strip() or detect_market_stage(summary)
    else:
        logger.warning(
            "Deep research output was not JSON; using heuristic parsing",
            extra={"step": "deep_research_parse"},
        )
        signals = _signals_from_prose(text)
        summary = text.split("\n\n")[0].strip()
        market_stage = detect_market_stage(summary)

    return {
        "proofSignals": signals,
        "summary": summary,
        "marketStage": market_stage,
        "disclaimer": DEFAULT_PROOF_SIGNAL_DISCLAIMER,
    }


class OpenAIDeepResearchProvider(BaseResearchProvider):
    """
    External job client for OpenAI deep research via the Responses API.

    Jobs are created in background mode (`background=True, store=True`) so
    the create call returns an id quickly; completion is observed by
    retrieving the response on each poll.
    """

    name = "openai_deep_research"

    def __init__(self, client: OpenAI | None = None, model: str | None = None) -> None:
        self._client = client
        self._model = model or get_settings().DEEP_RESEARCH_MODEL

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = get_deep_research_client()
        return self._client

    def create_job(self, prompt: str) -> str:
        response = self.client.responses.create(
            model=self._model,
            background=True,
            store=True,
            input=[
                {"role": "developer", "content": [{"type": "input_text", "text": RESEARCH_SYSTEM_PROMPT}]},
                {"role": "user", "content": [{"type": "input_text", "text": prompt}]},
            ],
            tools=[{"type": "web_search_preview"}],
            reasoning={"summary": "auto"},
        )
        job_id = _attr(response, "id")
        if not job_id:
            raise ResearchProviderError("Deep research provider did not return a job id")

        logger.info(
            "Deep research job created",
            extra={"external_job_id": job_id, "step": "provider:create_job"},
        )
        return str(job_id)

    def get_status(self, external_job_id: str) -> ResearchProviderStatus:
        response = self.client.responses.retrieve(external_job_id)
        status = _attr(response, "status")

        if status in _RUNNING_STATES:
            return ResearchProviderStatus(status="running")

        if status in _FAILED_STATES:
            error = _attr(response, "error")
            details = _attr(response, "incomplete_details")
            message = (
                _attr(error, "message")
                or _attr(details, "reason")
                or f"Deep research {status}"
            )
            return ResearchProviderStatus(status="failed", message=str(message))

        if status != "completed":
            raise ResearchProviderError(f"Unexpected deep research status: {status!r}")

        text = extract_output_text(response)
        usage = extract_usage(response, self._model)
        if not text:
            return ResearchProviderStatus(
                status="failed",
                usage=usage,
                message="Deep research completed without output",
            )

        bundle = parse_research_text(text)
        return ResearchProviderStatus(
            status="completed",
            payload=bundle,
            proof_signals=bundle["proofSignals"],
            usage=usage,
            summary=bundle["summary"],
            market_stage=bundle["marketStage"],
            disclaimer=bundle["disclaimer"],
        )
