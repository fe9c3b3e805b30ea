from __future__ import annotations

import logging

from openai import OpenAI

from ..core.config import get_settings

logger = logging.getLogger(__name__)


def deep_research_sdk_timeout_seconds() -> int:
    """
    SDK timeout for deep-research calls.

    The provider's initial acknowledgement alone can take minutes, so the
    SDK ceiling never drops below DEEP_RESEARCH_SDK_MIN_TIMEOUT_SECONDS even
    when the job-level timeout is shorter.
    """
    settings = get_settings()
    return max(
        settings.DEEP_RESEARCH_TIMEOUT_SECONDS,
        settings.DEEP_RESEARCH_SDK_MIN_TIMEOUT_SECONDS,
    )


def get_deep_research_client() -> OpenAI:
    """
    Factory for the OpenAI client used for deep research.

    Built fresh per call so timeout settings are always current. SDK retries
    are disabled: a retried create would submit a second billable job, and
    status polls are retried by the caller re-polling.
    """
    settings = get_settings()

    if not settings.OPENAI_API_KEY:
        raise RuntimeError(
            "No deep research API key configured. Set OPENAI_API_KEY."
        )

    timeout = deep_research_sdk_timeout_seconds()
    logger.debug(
        "Deep research client timeout set to %ss", timeout,
        extra={"step": "deep_research_client"},
    )
    return OpenAI(
        api_key=settings.OPENAI_API_KEY.strip(),
        timeout=float(timeout),
        max_retries=0,
    )
