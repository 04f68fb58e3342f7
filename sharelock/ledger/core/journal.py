# MIT License
# Copyright (c) 2025 Hashborn

"""
Change Journal

Records every mutation made while one operation is applied:
- an undo entry restoring the previous value
- the canonical state key the mutation touched

The executor writes only the touched keys to storage on success, or
replays the undo entries in reverse on failure. Both cost O(changes).

Outside begin()/commit() mutations apply directly and nothing is recorded
(tests, loading, genesis).
"""

from typing import Any, Callable, List, MutableMapping, Optional, Set

_MISSING = object()


# --- State key layout (shared by persistence and the write set) ---

def balance_key(symbol: str, address: str) -> str:
    return f"bal:{symbol}:{address}"


def allowance_key(symbol: str, owner: str, spender: str) -> str:
    return f"allow:{symbol}:{owner}:{spender}"


def nonce_key(address: str) -> str:
    return f"nonce:{address}"


def lock_key(lock_id: int) -> str:
    return f"lock:{lock_id:012d}"


def window_key(index: int) -> str:
    return f"window:{index:012d}"


def claimed_key(window_index: int, word_index: int) -> str:
    return f"claimed:{window_index}:{word_index}"


def paid_key(window_index: int) -> str:
    return f"paid:{window_index}"


def _restore_item(mapping: MutableMapping, key: Any, old: Any) -> None:
    if old is _MISSING:
        mapping.pop(key, None)
    else:
        mapping[key] = old


class ChangeJournal:
    def __init__(self):
        self.active = False
        self.dirty: Set[str] = set()
        self._undo: List[Callable[[], None]] = []

    def begin(self) -> None:
        if self.active:
            raise RuntimeError("change journal already open")
        self.active = True
        self.dirty = set()
        self._undo = []

    def commit(self) -> Set[str]:
        """Closes the journal, keeping every change. Returns the touched keys."""
        dirty = self.dirty
        self._close()
        return dirty

    def rollback(self) -> None:
        """Undoes every recorded change, newest first."""
        while self._undo:
            self._undo.pop()()
        self._close()

    def _close(self) -> None:
        self.active = False
        self.dirty = set()
        self._undo = []

    def touch(self, state_key: Optional[str]) -> None:
        if self.active and state_key:
            self.dirty.add(state_key)

    # --- Recorded mutations ---

    def set_item(self, mapping: MutableMapping, key: Any, value: Any, state_key: str = None) -> None:
        if self.active:
            old = mapping.get(key, _MISSING)
            self._undo.append(lambda: _restore_item(mapping, key, old))
        mapping[key] = value
        self.touch(state_key)

    def delete_item(self, mapping: MutableMapping, key: Any, state_key: str = None) -> None:
        if key not in mapping:
            return
        if self.active:
            old = mapping[key]
            self._undo.append(lambda: _restore_item(mapping, key, old))
        del mapping[key]
        self.touch(state_key)

    def append(self, items: list, value: Any, state_key: str = None) -> None:
        if self.active:
            self._undo.append(items.pop)
        items.append(value)
        self.touch(state_key)

    def set_index(self, items: list, index: int, value: Any, state_key: str = None) -> None:
        if self.active:
            old = items[index]
            self._undo.append(lambda: items.__setitem__(index, old))
        items[index] = value
        self.touch(state_key)

    def set_attr(self, obj: Any, name: str, value: Any, state_key: str = None) -> None:
        if self.active:
            old = getattr(obj, name)
            self._undo.append(lambda: setattr(obj, name, old))
        setattr(obj, name, value)
        self.touch(state_key)
