"""In-memory offer repository."""

from __future__ import annotations

import json
import threading
from typing import TYPE_CHECKING

from offerintel.typing.models import Offer, Thread

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from offerintel.typing.enums import OfferStatus


class InMemoryOfferRepository:
    """`OfferRepository` keeping copies of offers and threads in process memory.

    Stored objects are copied on the way in and out, so callers never share mutable state with
    the store.
    """

    def __init__(self, offers: list[Offer] | None = None, threads: list[Thread] | None = None) -> None:
        self._lock = threading.RLock()
        self._offers: dict[str, Offer] = {}
        self._threads: dict[str, Thread] = {}
        for offer in offers or []:
            self.save(offer)
        for thread in threads or []:
            self.save_thread(thread)

    def get(self, offer_id: str) -> Offer | None:
        with self._lock:
            offer = self._offers.get(offer_id)
            return offer.model_copy(deep=True) if offer else None

    def _select(self, predicate: Callable[[Offer], bool]) -> list[Offer]:
        with self._lock:
            return [offer.model_copy(deep=True) for offer in self._offers.values() if predicate(offer)]

    def find_by_message(self, message_id: str) -> Offer | None:
        matches = self._select(lambda offer: offer.handles_message(message_id))
        return matches[0] if matches else None

    def find_by_signing_request(self, request_id: str) -> Offer | None:
        matches = self._select(lambda offer: offer.signing_request_id == request_id)
        return matches[0] if matches else None

    def list_for_pair(self, listing_id: str, buyer_id: str) -> list[Offer]:
        return self._select(lambda offer: offer.pair == (listing_id, buyer_id))

    def list_for_thread(self, thread_id: str) -> list[Offer]:
        return self._select(lambda offer: offer.thread_id == thread_id)

    def list_by_status(self, statuses: set[OfferStatus]) -> list[Offer]:
        return self._select(lambda offer: offer.status in statuses)

    def save(self, offer: Offer) -> Offer:
        with self._lock:
            self._offers[offer.id] = offer.model_copy(deep=True)
        return offer

    def get_thread(self, thread_id: str) -> Thread | None:
        with self._lock:
            thread = self._threads.get(thread_id)
            return thread.model_copy() if thread else None

    def save_thread(self, thread: Thread) -> Thread:
        with self._lock:
            self._threads[thread.id] = thread.model_copy()
        return thread

    def all_offers(self) -> list[Offer]:
        """Return every stored offer in insertion order."""
        return self._select(lambda _offer: True)

    def dump(self, path: Path) -> None:
        """Write offers and threads to a JSON file."""
        with self._lock:
            payload = {
                "offers": [offer.model_dump(mode="json") for offer in self._offers.values()],
                "threads": [thread.model_dump(mode="json") for thread in self._threads.values()],
            }
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")

    @classmethod
    def load(cls, path: Path) -> InMemoryOfferRepository:
        """Read a repository written by `dump`."""
        payload = json.loads(path.read_text(encoding="utf-8"))
        return cls(
            offers=[Offer.model_validate(item) for item in payload.get("offers", [])],
            threads=[Thread.model_validate(item) for item in payload.get("threads", [])],
        )
