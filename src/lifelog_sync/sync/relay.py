"""Peer relay for entries recorded on a companion device.

A watch hands its entries to the phone, which stores and uploads them. The
transport between the two is platform specific; this module only defines
the capability and the receiving side.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from lifelog_sync.api.models import LogEntry
from lifelog_sync.store import LocalStore

logger = logging.getLogger(__name__)


class EntryRelay(ABC):
    """A channel that delivers entries to a peer, eventually, at least once."""

    @abstractmethod
    def send(self, entry: LogEntry) -> None:
        """Deliver an entry to the peer."""

    @abstractmethod
    def request_sync(self) -> None:
        """Ask the peer to run a sync cycle."""


class StoreRelay(EntryRelay):
    """Receiving end of a relay that writes entries into a local store.

    Delivery may repeat, so receiving an entry is idempotent by id.
    """

    def __init__(
        self,
        store: LocalStore,
        on_sync_request: Callable[[], Any] | None = None,
    ) -> None:
        """Initialize the relay.

        Args:
            store: Store receiving the entries.
            on_sync_request: Called when the peer asks for a sync.
        """
        self.store = store
        self.on_sync_request = on_sync_request

    def send(self, entry: LogEntry) -> None:
        """Store a relayed entry as unsynced.

        A redelivered entry that is already synced and unchanged is left
        alone so it is not uploaded twice.
        """
        if entry.id in self.store.all_ids():
            current = self.store.get_record(entry.id)
            if current is not None and current.synced and current.entry == entry:
                logger.debug(f"Ignoring redelivered entry {entry.id}")
                return
        self.store.add(entry)
        logger.info(f"Received entry {entry.id} from {entry.source.value}")

    def request_sync(self) -> None:
        if self.on_sync_request is None:
            logger.warning("Sync requested by peer but no handler is set")
            return
        self.on_sync_request()

    def handle_message(self, message: dict[str, Any]) -> dict[str, Any]:
        """Handle a message envelope from the peer.

        Supported envelopes are ``{"entry": <JSON bytes, str or dict>}`` and
        ``{"action": "sync"}``.

        Args:
            message: Message received from the peer.

        Returns:
            Reply for the peer.
        """
        if "entry" in message:
            raw = message["entry"]
            try:
                if isinstance(raw, (bytes, str)):
                    raw = json.loads(raw)
                entry = LogEntry.from_api_dict(raw)
            except (ValueError, ValidationError) as e:
                logger.error(f"Undecodable entry from peer: {e}")
                return {"status": "error", "error": "invalid entry"}
            self.send(entry)
            return {"status": "received"}

        if message.get("action") == "sync":
            self.request_sync()
            return {"status": "syncing"}

        logger.warning(f"Unknown peer message: {sorted(message)}")
        return {"status": "error", "error": "unknown message"}
