from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Iterable
from datetime import datetime

from .db import SeenStore
from .logging_bridge import activity as log_activity
from .logging_bridge import error as log_error
from .models import RawCandidate

LOG = logging.getLogger(__name__)

# Decision labels, also the tally keys.
NEW = "new"
RELISTED = "relisted"
UNCHANGED = "unchanged"
BLACKLISTED = "blacklisted"
EXPIRED = "expired"
LOST_RACE = "lost_race"
ERROR = "error"


def classify(store: SeenStore, cand: RawCandidate, *, cutoff: datetime | None = None) -> str:
    """
    Decide one candidate and, when accepted, record it.

    Returns NEW or RELISTED for accepted candidates (the store has been
    advanced to cand.listed_at), otherwise BLACKLISTED, EXPIRED, UNCHANGED
    or LOST_RACE with no store mutation. Store errors propagate.

    `cutoff` is the retention boundary: a listing older than it would be
    purged again straight away, so it is never recorded or accepted.
    """
    identity = cand.identity
    if store.is_blacklisted(identity):
        return BLACKLISTED
    if cutoff is not None and cand.listed_at < cutoff:
        return EXPIRED

    last_seen = store.get_last_seen_at(identity)
    if last_seen is not None and cand.listed_at <= last_seen:
        return UNCHANGED

    if not store.upsert_seen(identity, cand.listed_at):
        # A newer timestamp landed between the read and the write.
        return LOST_RACE
    return NEW if last_seen is None else RELISTED


def filter_batch(
    store: SeenStore,
    raw: Iterable[RawCandidate],
    *,
    tally: Counter | None = None,
    cutoff: datetime | None = None,
    cancel: threading.Event | None = None,
) -> list[RawCandidate]:
    """
    Keep candidates that are unseen or re-listed since last observed,
    preserving input order.

    A store failure rejects only that candidate for this cycle. A set
    `cancel` stops the loop between candidates; the rest are left
    untouched. Decisions are counted into `tally` (when given) and logged
    as one record.
    """
    counts: Counter = Counter() if tally is None else tally
    accepted: list[RawCandidate] = []
    total = 0
    cancelled = False

    for cand in raw:
        if cancel is not None and cancel.is_set():
            cancelled = True
            break
        total += 1
        try:
            decision = classify(store, cand, cutoff=cutoff)
        except Exception as e:
            decision = ERROR
            LOG.warning("novelty check failed for %s: %r", cand.identity, e)
            log_error({
                "component": "recruit_watch.novelty",
                "op": "classify",
                "candidate": str(cand.identity),
                "listed_at": cand.listed_at.isoformat(),
                "error": repr(e),
            })
        counts[decision] += 1
        if decision in (NEW, RELISTED):
            accepted.append(cand)

    log_activity({
        "component": "recruit_watch.novelty",
        "op": "filter_batch",
        "received": total,
        "accepted": len(accepted),
        "decisions": dict(counts),
        "cancelled": cancelled,
    })
    return accepted
