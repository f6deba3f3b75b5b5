# recruit_watch/http_client.py
from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Mapping
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOG = logging.getLogger(__name__)

BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

BACKOFF_FACTOR = 0.5

# Retry count for enrichment calls, which all run under one deadline.
SOURCE_RETRIES = 1


class HttpClient:
    """
    Shared HTTP client with sane defaults and simple helpers.

    Only idempotent reads (GET/HEAD) are retried. POSTs go out once so a
    webhook or token request is never duplicated by the transport.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = "RecruitWatch/0.1 (+https://example.invalid)",
        retries: int = 3,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        retry = Retry(
            total=retries,
            backoff_factor=BACKOFF_FACTOR,
            status_forcelist=(429, 500, 502, 503, 504),
            allowed_methods=frozenset(["GET", "HEAD"]),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry, pool_connections=10, pool_maxsize=20)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    # ---- convenience ----
    def get_text(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        encoding: str | None = None,
        **kwargs: Any,
    ) -> str:
        """GET and return decoded text with gentle encoding hints."""
        resp = self.session.get(url, params=params, headers=headers, timeout=timeout or self.timeout, **kwargs)
        resp.raise_for_status()
        if encoding:
            resp.encoding = encoding
        elif not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        return resp.text

    def get_json(
        self,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
        missing: tuple[int, ...] = (),
        **kwargs: Any,
    ) -> Any:
        """
        GET and parse JSON with clearer errors if decoding fails.
        A status listed in `missing` returns None instead of raising.
        """
        resp = self.session.get(url, params=params, headers=headers, timeout=timeout or self.timeout, **kwargs)
        if resp.status_code in missing:
            return None
        resp.raise_for_status()
        return _decode_json(resp, url)

    def post_json(
        self,
        url: str,
        *,
        json_body: Any = None,
        data: Mapping[str, Any] | None = None,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
        auth: tuple[str, str] | None = None,
        timeout: float | None = None,
        expect_json: bool = True,
    ) -> Any:
        """POST once (never retried). Returns parsed JSON, or None when not expected/empty."""
        resp = self.session.post(
            url,
            json=json_body,
            data=data,
            params=params,
            headers=headers,
            auth=auth,
            timeout=timeout or self.timeout,
        )
        if resp.status_code >= 400:
            preview = (resp.text or "")[:200].replace("\n", " ")
            raise requests.HTTPError(f"{resp.status_code} for POST {_safe_url(url)}: {preview}", response=resp)
        if not expect_json or not resp.content:
            return None
        return _decode_json(resp, url)

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)


class ClientCredentialsToken:
    """
    OAuth2 client-credentials token with a refresh margin.

    Thread-safe: enrichment clients run on a worker pool and share one cache.
    """

    def __init__(self, token_url: str, client_id: str, client_secret: str, *, margin_s: int = 60) -> None:
        self.token_url = token_url
        self._client_id = client_id
        self._client_secret = client_secret
        self._margin_s = margin_s
        self._token: str | None = None
        self._expires_at = 0.0
        self._lock = threading.Lock()

    def get(self, http: HttpClient) -> str:
        with self._lock:
            if self._token and time.monotonic() < self._expires_at:
                return self._token
            LOG.info("Requesting new access token from %s", self.token_url)
            body = http.post_json(
                self.token_url,
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
            )
            token = (body or {}).get("access_token")
            if not token:
                raise RuntimeError(f"No access_token in response from {self.token_url}")
            expires_in = int((body or {}).get("expires_in") or 3600)
            self._token = str(token)
            self._expires_at = time.monotonic() + max(0, expires_in - self._margin_s)
            return self._token

    def invalidate(self) -> None:
        with self._lock:
            self._token = None
            self._expires_at = 0.0


def _decode_json(resp: requests.Response, url: str) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        # Server may send text/plain with a JSON body.
        try:
            return json.loads(resp.text)
        except Exception:
            preview = resp.text[:200].replace("\n", " ")
            raise ValueError(f"JSON decode failed for {_safe_url(url)!r}; body starts: {preview!r}") from e


def _safe_url(url: str) -> str:
    """Drop the query string, which may carry an access key."""
    return url.split("?", 1)[0]


def attempt_timeout(budget_s: float, retries: int, *, ceiling: float | None = None) -> float:
    """
    Per-attempt timeout such that `retries + 1` attempts plus urllib3's
    backoff sleeps fit inside `budget_s`. Never below one second.

    urllib3 does not sleep before the first retry, then doubles from
    BACKOFF_FACTOR * 2.
    """
    sleeps = sum(BACKOFF_FACTOR * (2**i) for i in range(1, max(0, retries)))
    per_attempt = max(1.0, (float(budget_s) - sleeps) / (max(0, retries) + 1))
    if ceiling is not None:
        per_attempt = min(per_attempt, float(ceiling))
    return per_attempt
