from __future__ import annotations

import json
from typing import Any, Iterable, Optional, Union


# A tag is a resource type with an optional id; "LIST" marks collection queries
Tag = tuple[str, Optional[str]]
TagLike = Union[str, Tag]

TAG_TYPES = {"Claim", "Leave", "User", "Policy"}


def _tag(value: TagLike) -> Tag:
    if isinstance(value, str):
        kind, ident = value, None
    else:
        kind, ident = value[0], (str(value[1]) if value[1] is not None else None)
    if kind not in TAG_TYPES:
        raise ValueError(f"Unknown cache tag type: {kind}")
    return kind, ident


def cache_key(endpoint: str, params: Optional[dict] = None) -> str:
    return f"{endpoint}?{json.dumps(params or {}, sort_keys=True, default=str)}"


class TaggedCache:
    """Query results keyed by endpoint and params, dropped when a tag they provide is invalidated.

    Invalidating a bare type (``"Claim"``) drops every entry providing any
    ``Claim`` tag; invalidating ``("Claim", id)`` drops only entries that
    provide that exact tag.
    """

    def __init__(self):
        self._entries: dict[str, tuple[Any, set[Tag]]] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, endpoint: str, params: Optional[dict] = None, default: Any = None) -> Any:
        entry = self._entries.get(cache_key(endpoint, params))
        return entry[0] if entry else default

    def has(self, endpoint: str, params: Optional[dict] = None) -> bool:
        return cache_key(endpoint, params) in self._entries

    def set(self, endpoint: str, params: Optional[dict], value: Any, tags: Iterable[TagLike] = ()) -> None:
        self._entries[cache_key(endpoint, params)] = (value, {_tag(t) for t in tags})

    def tags_for(self, endpoint: str, params: Optional[dict] = None) -> set[Tag]:
        entry = self._entries.get(cache_key(endpoint, params))
        return set(entry[1]) if entry else set()

    def invalidate(self, tags: Iterable[TagLike]) -> list[str]:
        wanted = [_tag(t) for t in tags]
        dropped = []
        for key, (_, provided) in list(self._entries.items()):
            for kind, ident in wanted:
                if any(p[0] == kind and (ident is None or p[1] == ident) for p in provided):
                    dropped.append(key)
                    del self._entries[key]
                    break
        return dropped

    def clear(self) -> None:
        self._entries.clear()
