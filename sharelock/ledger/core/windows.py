"""
Window Registry

Append-only history of reward distribution windows. Each window is anchored
by the Merkle root of its allocation list and bounded by its total
allocation. Funding is checked at claim time, not at publication.
"""
import logging
from typing import Callable, List

from .journal import ChangeJournal, window_key
from .locks import clamp_page
from ...protocol.crypto.hash import ZERO_HASH
from ...protocol.types.window import Window
from ...protocol.types.common import InvalidAmount, InvalidProof, NotFound, NotOwner

logger = logging.getLogger(__name__)


def parse_hash(value: str) -> bytes:
    """Parses a hex-encoded 32-byte hash, with or without 0x prefix."""
    if not isinstance(value, str):
        raise ValueError("hash must be a hex string")
    if value.startswith(("0x", "0X")):
        value = value[2:]
    raw = bytes.fromhex(value)
    if len(raw) != 32:
        raise ValueError(f"hash must be 32 bytes, got {len(raw)}")
    return raw


class WindowRegistry:
    def __init__(self, admin: str, emit: Callable = None, journal: ChangeJournal = None):
        self.admin = admin
        self._emit = emit or (lambda event_type, **data: None)
        self.journal = journal or ChangeJournal()
        self.windows: List[Window] = []

    def publish_window(self, caller: str, merkle_root: str, total_allocated: int,
                       metadata: str = "", now: int = 0) -> int:
        """
        Registers a new distribution round. Admin only.

        Returns:
            index of the new window

        Raises:
            NotOwner: caller is not the admin
            InvalidProof: root is malformed or all zero
            InvalidAmount: total_allocated is not positive
        """
        if caller != self.admin:
            raise NotOwner(f"{caller} is not the ledger admin", code="!admin")

        try:
            root = parse_hash(merkle_root)
        except ValueError as e:
            raise InvalidProof(f"malformed merkle root: {e}")
        if root == ZERO_HASH:
            raise InvalidProof("merkle root must be non-zero")

        if total_allocated <= 0:
            raise InvalidAmount(f"total_allocated must be positive, got {total_allocated}")

        window = Window(
            index=len(self.windows),
            merkle_root=root.hex(),
            total_allocated=total_allocated,
            metadata=metadata or "",
            published_at=now,
        )
        self.journal.append(self.windows, window, window_key(window.index))

        logger.info(f"Published window {window.index}: root {window.merkle_root[:16]}..., allocation {total_allocated}")
        self._emit("window_published", window_index=window.index, merkle_root=window.merkle_root,
                   total_allocated=total_allocated, metadata=window.metadata)
        return window.index

    def window(self, index: int) -> Window:
        if not isinstance(index, int) or isinstance(index, bool) or index < 0 or index >= len(self.windows):
            raise NotFound(f"window {index} does not exist")
        return self.windows[index]

    def get_windows_length(self) -> int:
        return len(self.windows)

    def list_windows(self, offset: int = 0, limit: int = 100) -> List[Window]:
        offset, limit = clamp_page(offset, limit)
        return self.windows[offset:offset + limit]
