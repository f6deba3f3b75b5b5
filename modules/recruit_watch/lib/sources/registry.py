from __future__ import annotations

from .base import EnrichmentClient

# Global in-process registry: kind -> enrichment client class
_REGISTRY: dict[str, type[EnrichmentClient]] = {}


def register(cls: type[EnrichmentClient]) -> type[EnrichmentClient]:
    """
    Class decorator registering an enrichment client under cls.kind.
    Re-registering the same class is a no-op; a different class under the
    same kind is rejected.
    """
    kind = getattr(cls, "kind", "") or ""
    if not isinstance(kind, str) or not kind.strip():
        raise ValueError(f"Cannot register client {cls!r}: missing/empty 'kind'.")
    key = kind.strip().lower()
    if key in _REGISTRY and _REGISTRY[key] is not cls:
        raise ValueError(f"Client kind {key!r} already registered to {_REGISTRY[key]!r}.")
    _REGISTRY[key] = cls
    return cls


def get(kind: str) -> type[EnrichmentClient]:
    """
    Look up a client class by kind (case-insensitive).
    Raises KeyError if not found.
    """
    key = (kind or "").strip().lower()
    if key not in _REGISTRY:
        raise KeyError(f"No enrichment client registered for kind {kind!r}.")
    return _REGISTRY[key]


def all_kinds() -> dict[str, type[EnrichmentClient]]:
    return dict(_REGISTRY)
