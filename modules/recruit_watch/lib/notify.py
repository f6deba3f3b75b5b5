from __future__ import annotations

import logging

import requests

from .http_client import HttpClient
from .models import EnrichedCandidate, RawCandidate
from .render import build_payload, build_rejection_payload

LOG = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    """Raised when a webhook post is rejected or cannot be delivered."""


class DiscordNotifier:
    """
    Posts candidate cards to a Discord webhook.

    One POST per call, never retried: a duplicate card is worse than a
    missed one. Failures surface as NotificationError for the caller to
    log and count.
    """

    def __init__(self, webhook_url: str, http: HttpClient | None = None, *, timeout: float = 15.0) -> None:
        if not webhook_url:
            raise ValueError("webhook_url is required")
        self.webhook_url = webhook_url
        self._http = http or HttpClient(timeout=timeout)
        self.timeout = timeout

    def dispatch(self, enriched: EnrichedCandidate) -> None:
        self._post(build_payload(enriched), params={"with_components": "true"})
        LOG.info("Sent candidate card for %s", enriched.candidate.identity)

    def dispatch_rejection(self, candidate: RawCandidate, reason: str) -> None:
        self._post(build_rejection_payload(candidate, reason))
        LOG.info("Sent filtered-out notice for %s: %s", candidate.identity, reason)

    def _post(self, payload: dict, *, params: dict | None = None) -> None:
        try:
            self._http.post_json(
                self.webhook_url,
                json_body=payload,
                params=params,
                timeout=self.timeout,
                expect_json=False,
            )
        except requests.RequestException as e:
            # The exception text never includes the webhook path.
            raise NotificationError(f"Discord webhook post failed: {_describe(e)}") from e


def _describe(e: requests.RequestException) -> str:
    resp = getattr(e, "response", None)
    if resp is not None:
        return f"HTTP {resp.status_code}"
    return type(e).__name__
