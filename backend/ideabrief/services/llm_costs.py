from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..core.config import get_settings


@dataclass(frozen=True)
class ModelRate:
    input_per_mtok: float
    output_per_mtok: float
    cached_input_per_mtok: Optional[float] = None


def _build_default_pricebook() -> Dict[str, ModelRate]:
    # Prices sourced from OpenAI API pricing (USD per 1M tokens).
    return {
        "o3-deep-research": ModelRate(
            input_per_mtok=10.000,
            output_per_mtok=40.000,
            cached_input_per_mtok=2.500,
        ),
        "o4-mini-deep-research": ModelRate(
            input_per_mtok=2.000,
            output_per_mtok=8.000,
            cached_input_per_mtok=0.500,
        ),
    }


def _load_pricebook() -> Dict[str, ModelRate]:
    settings = get_settings()
    pricebook = _build_default_pricebook()
    override_raw = settings.LLM_PRICEBOOK_JSON
    if not override_raw:
        return pricebook

    try:
        override = json.loads(override_raw)
    except json.JSONDecodeError:
        return pricebook

    if not isinstance(override, dict):
        return pricebook

    for key, value in override.items():
        if not isinstance(value, dict):
            continue
        try:
            pricebook[key.strip().lower()] = ModelRate(
                input_per_mtok=float(value["input_per_mtok"]),
                output_per_mtok=float(value["output_per_mtok"]),
                cached_input_per_mtok=float(value.get("cached_input_per_mtok"))
                if value.get("cached_input_per_mtok") is not None
                else None,
            )
        except (KeyError, ValueError, TypeError):
            continue
    return pricebook


_PRICEBOOK: Dict[str, ModelRate] = _load_pricebook()
_WEB_SEARCH_COST_PER_CALL = get_settings().WEB_SEARCH_PER_CALL_USD


def normalize_model_name(model: str | None) -> str:
    """
    Map provider model ids onto pricebook keys.

    Dated snapshots ("o4-mini-deep-research-2025-06-26") and routed names
    ("openai/o3-deep-research") collapse onto their base model.
    """
    m = (model or "").strip().lower()
    if "/" in m:
        m = m.split("/")[-1]
    if ":" in m:
        m = m.split(":")[0]
    for key in sorted(_PRICEBOOK, key=len, reverse=True):
        if m.startswith(key):
            return key
    return m


def cost_for_tokens(
    model: str | None,
    input_tokens: int,
    output_tokens: int,
    cached_input_tokens: int = 0,
) -> float:
    key = normalize_model_name(model)
    rate = _PRICEBOOK.get(key)
    if not rate:
        return 0.0

    paid_input = max(0, int(input_tokens) - max(0, int(cached_input_tokens)))
    cached_input = max(0, int(cached_input_tokens))
    output = max(0, int(output_tokens))

    total = 0.0
    total += (paid_input / 1_000_000) * rate.input_per_mtok
    total += (output / 1_000_000) * rate.output_per_mtok
    if cached_input:
        cached_rate = rate.cached_input_per_mtok or rate.input_per_mtok
        total += (cached_input / 1_000_000) * cached_rate
    return total


def cost_for_web_search_calls(call_count: int) -> float:
    return max(0, int(call_count)) * _WEB_SEARCH_COST_PER_CALL


def build_token_usage(
    model: str | None,
    *,
    input_tokens: int = 0,
    output_tokens: int = 0,
    total_tokens: int | None = None,
    cached_input_tokens: int = 0,
    reasoning_output_tokens: int = 0,
    web_search_calls: int = 0,
) -> Dict[str, Any]:
    """
    Token-usage record stored on a research job (camelCase, as clients read it).
    """
    model_cost = cost_for_tokens(model, input_tokens, output_tokens, cached_input_tokens)
    tool_cost = cost_for_web_search_calls(web_search_calls)
    return {
        "model": model or "",
        "promptTokens": int(input_tokens or 0),
        "completionTokens": int(output_tokens or 0),
        "totalTokens": int(
            total_tokens if total_tokens is not None else (input_tokens or 0) + (output_tokens or 0)
        ),
        "cachedPromptTokens": int(cached_input_tokens or 0),
        "reasoningTokens": int(reasoning_output_tokens or 0),
        "webSearchCalls": int(web_search_calls or 0),
        "costUsd": round(model_cost + tool_cost, 6),
    }
