# ruff: noqa: E501

from __future__ import annotations

import logging
from typing import Any

from .logging_bridge import error as log_error

LOG = logging.getLogger(__name__)

RECRUITER_PROMPT = (
    "You evaluate applicants for a mythic raiding guild in World of Warcraft. Judge only on the data given.\n"
    "Criteria, most important first:\n"
    " - Stability: several guild changes in one tier or year is a serious concern; forgive it only for clearly exceptional players\n"
    " - Package deals: a player who will only join together with a friend or partner is a near-automatic no\n"
    " - History: previous Cutting Edge kills count heavily\n"
    " - Current progress: a full mythic clear of the current tier is preferred\n"
    " - Performance: around the 80th percentile or better on relevant fights; value falls off quickly below that\n"
    " - Versatility: able to play every spec relevant to the role\n"
    "Answer in markdown without tables, with bold section titles, in this order:\n"
    "Player Summary, Strengths, Concerns, Recruitment Verdict (Strong interest / Moderate interest / Not interested, with one sentence why), "
    "Recommended Action (one sentence).\n"
    "Stay under 300 words. Be direct and skip generic praise."
)


class Summarizer:
    """
    Best-effort AI evaluation over the shared OpenAIChat facade.
    `summarize` never raises; any failure returns None.
    """

    def __init__(self, chat: Any, *, system_prompt: str = RECRUITER_PROMPT) -> None:
        self._chat = chat
        self.system_prompt = system_prompt

    @classmethod
    def from_settings(cls, settings: Any) -> Summarizer | None:
        if not settings.enable_summary:
            return None
        if not settings.llm_api_key:
            LOG.warning("enable_summary is set but no LLM API key is configured; summaries disabled")
            return None
        from modules._shared import utils  # thin facade

        chat = utils.OpenAIChat(
            model_env=settings.llm_model,
            temp_env=str(settings.llm_temperature),
            base_url_env=settings.llm_base_url,
            api_key=settings.llm_api_key,
        )
        return cls(chat)

    def summarize(self, text: str) -> str | None:
        if not text or not text.strip():
            return None
        try:
            out = self._chat.chat(self.system_prompt, text)
        except Exception as e:
            LOG.warning("summary failed: %r", e)
            log_error({"component": "recruit_watch.summarize", "op": "summarize", "error": repr(e)})
            return None
        return out.strip() or None
