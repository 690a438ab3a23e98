"""Store for simulated webhook payloads used by the test-webhook endpoints.

One instance lives on app.state and reaches routes through
get_sample_store, so tests can swap it out.
"""

from typing import Optional, Protocol

from fastapi import Request


class SampleEventStore(Protocol):
    def get(self, key: str) -> Optional[dict]: ...
    def put(self, key: str, payload: dict) -> None: ...
    def list(self) -> list[dict]: ...
    def clear(self) -> int: ...


class InMemorySampleEventStore:
    """Insertion-ordered in-process store. Contents do not survive restarts."""

    def __init__(self):
        self._items: dict[str, dict] = {}

    def get(self, key: str) -> Optional[dict]:
        return self._items.get(key)

    def put(self, key: str, payload: dict) -> None:
        self._items[key] = payload

    def list(self) -> list[dict]:
        return [{"key": key, "payload": payload} for key, payload in self._items.items()]

    def clear(self) -> int:
        """Remove everything; returns how many entries were dropped."""
        count = len(self._items)
        self._items.clear()
        return count


def get_sample_store(request: Request) -> SampleEventStore:
    """Dependency: the application's sample store."""
    return request.app.state.sample_store
