# modules/_shared/utils.py
from __future__ import annotations

import contextlib
import glob
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone

log = logging.getLogger(__name__)


def _truthy(s: str | None) -> bool:
    return (s or "").strip().lower() in {"1", "true", "yes", "on"}


def _env_or_literal(value: str | None) -> str | None:
    """Treat `value` as an env var name first; fall back to the literal."""
    if not value:
        return None
    return os.getenv(value) or value


def _as_float(raw: str | None, default: float) -> float:
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        log.warning("Invalid float %r; using default %s", raw, default)
        return default


@dataclass
class OpenAIChat:
    """
    Thin facade over openai.chat.completions with:
      - model loaded from env via `model_env` (or literal if missing)
      - temperature from `temp_env` (env name or literal number)
      - base URL from `base_url_env` (env name or literal) for
        OpenAI-compatible endpoints such as Gemini's
      - optional markdown archival controlled by LLM_MD_* envs
    """

    model_env: str
    temp_env: str
    api_key_env: str = "OPENAI_API_KEY"
    base_url_env: str | None = None
    api_key: str | None = None
    timeout: float = 60.0

    def chat(self, system_msg: str, user_msg: str) -> str:
        from openai import OpenAI  # local import to keep tests light

        model = _env_or_literal(self.model_env)
        api_key = self.api_key or os.getenv(self.api_key_env)
        if not api_key:
            raise RuntimeError(f"{self.api_key_env} not set")
        temp = _as_float(_env_or_literal(self.temp_env), 0.4)
        base_url = _env_or_literal(self.base_url_env)

        log.debug("OpenAIChat.chat(model=%r, temperature=%s, base_url=%r)", model, temp, base_url)
        client_kwargs = {"api_key": api_key, "timeout": self.timeout}
        if base_url:
            client_kwargs["base_url"] = base_url
        client = OpenAI(**client_kwargs)
        resp = client.chat.completions.create(
            model=model,
            messages=[{"role": "system", "content": system_msg}, {"role": "user", "content": user_msg}],
            temperature=temp,
        )
        content = (resp.choices[0].message.content or "").strip()
        log.debug("OpenAIChat.chat() received %d chars", len(content))

        # Optional markdown archival
        try:
            if _truthy(os.getenv("LLM_MD_ENABLE")):
                _archive_markdown(content)
        except OSError as werr:
            log.debug("LLM markdown write skipped: %r", werr)

        return content


def _archive_markdown(content: str) -> None:
    md_dir = os.getenv("LLM_MD_DIR", "/app/local/llm")
    prefix = os.getenv("LLM_MD_PREFIX", "llm")
    max_keep = int(os.getenv("LLM_MD_MAX", "0") or 0)  # 0 = unlimited
    os.makedirs(md_dir, exist_ok=True)
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    safe_prefix = re.sub(r"[^a-zA-Z0-9._-]+", "-", prefix).strip("-")
    fname = f"{safe_prefix + '-' if safe_prefix else ''}{ts}.md"
    out_path = os.path.join(md_dir, fname)
    with open(out_path, "w", encoding="utf-8") as f:
        f.write(content + "\n")
    log.debug("Wrote LLM markdown to %s", out_path)
    if max_keep > 0:
        pattern = os.path.join(md_dir, f"{safe_prefix + '-' if safe_prefix else ''}*.md")
        files = sorted(glob.glob(pattern), key=os.path.getmtime, reverse=True)
        for old in files[max_keep:]:
            with contextlib.suppress(OSError):
                os.remove(old)
