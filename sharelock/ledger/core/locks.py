# MIT License
# Copyright (c) 2025 Hashborn

"""
Lock Ledger

Turns deposits into time-locked, individually redeemable lock records and
mints reward shares scaled by the lock duration multiplier.

Flow:
1. deposit: pull the principal into custody, mint amount * multiplier / UNIT
   shares to the recipient, append a Lock.
2. withdraw: after maturity the owner burns the recorded shares and gets the
   principal back; the slot is cleared in place.

Lock ids are arena positions: never reused, the arena only grows. Every
operation checks all of its preconditions before the first mutation.
"""

import logging
from itertools import islice
from typing import Callable, Dict, List, Tuple

from .accounts import TokenLedger, MintAuthority
from .journal import ChangeJournal, lock_key
from .multiplier import shares_for
from ...protocol.config.params import StakingConfig, MAX_PAGE_SIZE
from ...protocol.types.lock import Lock, StakingData
from ...protocol.types.common import (
    InvalidAmount,
    InvalidOperation,
    NotExpired,
    NotFound,
    NotOwner,
    TransferFailed,
)

logger = logging.getLogger(__name__)


def _noop_emit(event_type: str, **data) -> None:
    pass


def clamp_page(offset: int, limit: int) -> Tuple[int, int]:
    if offset < 0:
        raise InvalidOperation(f"offset must be non-negative, got {offset}")
    if limit <= 0:
        raise InvalidOperation(f"limit must be positive, got {limit}")
    return offset, min(limit, MAX_PAGE_SIZE)


class LockLedger:
    """
    Owns the lock arena.

    Args:
        deposit_token: ledger of the staked asset
        authority: mint capability of the share token
        config: staking configuration (swapped atomically by the setters)
        admin: account allowed to call the administrative surface
        custody: account holding deposited principal
        emit: event sink, called after each state change
        journal: change journal recording arena mutations
    """

    def __init__(self,
                 deposit_token: TokenLedger,
                 authority: MintAuthority,
                 config: StakingConfig,
                 admin: str,
                 custody: str,
                 emit: Callable = None,
                 journal: ChangeJournal = None):
        config.validate()
        self.deposit_token = deposit_token
        self.authority = authority
        self.config = config
        self.admin = admin
        self.custody = custody
        self._emit = emit or _noop_emit
        self.journal = journal or ChangeJournal()

        self.locks: List[Lock] = []
        self.active_locks = 0
        # owner -> active lock ids in insertion order (dict used as ordered set)
        self._owner_index: Dict[str, Dict[int, None]] = {}

    # --- Reads ---

    def get_locks_length(self) -> int:
        return len(self.locks)

    def lock(self, lock_id: int) -> Lock:
        """Returns the lock record; withdrawn slots read back cleared."""
        # bool is an int subclass and never a lock id
        if not isinstance(lock_id, int) or isinstance(lock_id, bool) or lock_id < 0 or lock_id >= len(self.locks):
            raise NotFound(f"lock {lock_id} does not exist")
        return self.locks[lock_id].model_copy()

    @property
    def total_locked(self) -> int:
        return self.deposit_token.balance_of(self.custody)

    def list_locks(self, offset: int = 0, limit: int = 100) -> List[Tuple[int, Lock]]:
        offset, limit = clamp_page(offset, limit)
        end = min(offset + limit, len(self.locks))
        return [(i, self.locks[i].model_copy()) for i in range(offset, end)]

    def locks_of(self, owner: str, offset: int = 0, limit: int = 100) -> List[Tuple[int, Lock]]:
        """Active locks owned by `owner`, oldest first."""
        offset, limit = clamp_page(offset, limit)
        # a rolled-back clear reinserts its id at the end of the set
        ids = sorted(self._owner_index.get(owner, {}))
        return [(i, self.locks[i].model_copy()) for i in islice(ids, offset, offset + limit)]

    def get_staking_data(self, account: str, offset: int = 0, limit: int = 100) -> StakingData:
        return StakingData(
            account=account,
            locks=self.locks_of(account, offset, limit),
            share_balance=self.authority.token.balance_of(account),
            deposit_balance=self.deposit_token.balance_of(account),
            total_locked=self.total_locked,
            locks_length=len(self.locks),
            min_lock_duration=self.config.min_lock_duration,
            max_lock_duration=self.config.max_lock_duration,
            min_lock_amount=self.config.min_lock_amount,
        )

    # --- Deposits ---

    def deposit(self, caller: str, amount: int, duration: int, recipient: str, now: int) -> int:
        """
        Locks `amount` for `duration` seconds and mints scaled shares to `recipient`.

        Returns:
            id of the new lock

        Raises:
            InvalidAmount: zero amount or below min_lock_amount
            InvalidDuration: duration outside the configured bounds
            TransferFailed: the deposit token refused transfer_from
        """
        if amount <= 0:
            raise InvalidAmount(f"deposit amount must be positive, got {amount}")
        if amount < self.config.min_lock_amount:
            raise InvalidAmount(f"deposit amount {amount} below minimum {self.config.min_lock_amount}")
        if not recipient:
            raise InvalidOperation("recipient required")

        shares = shares_for(amount, duration, self.config)

        if not self.deposit_token.transfer_from(self.custody, caller, self.custody, amount):
            raise TransferFailed(
                f"transfer_from {caller} failed for {amount} "
                f"(balance {self.deposit_token.balance_of(caller)}, "
                f"allowance {self.deposit_token.allowance(caller, self.custody)})"
            )

        self.authority.mint(recipient, shares)
        lock_id = self._append(Lock(
            amount=amount,
            locked_at=now,
            lock_duration=duration,
            owner=caller,
            recipient=recipient,
            shares=shares,
        ))

        logger.info(f"Lock {lock_id}: {caller} locked {amount} for {duration}s, minted {shares} shares to {recipient}")
        self._emit("deposited", lock_id=lock_id, owner=caller, recipient=recipient,
                   amount=amount, duration=duration, shares=shares)
        return lock_id

    def deposit_by_months(self, caller: str, amount: int, months: int, recipient: str, now: int) -> int:
        """deposit() with the duration given in configured months."""
        if months < 0:
            raise InvalidOperation(f"months must be non-negative, got {months}")
        return self.deposit(caller, amount, months * self.config.seconds_per_month, recipient, now)

    def boost_to_max(self, caller: str, lock_id: int, now: int) -> int:
        """
        Re-locks an active lock for max_lock_duration starting now.

        The old slot is cleared and a new lock is appended; the recipient is
        minted the difference between full-multiplier shares and the shares
        already recorded. Returns the new lock id.
        """
        current = self._active_lock(lock_id)
        if current.owner != caller:
            raise NotOwner(f"{caller} is not the owner of lock {lock_id}")

        max_duration = self.config.max_lock_duration
        target_shares = shares_for(current.amount, max_duration, self.config)
        extra = max(target_shares - current.shares, 0)

        self.authority.mint(current.recipient, extra)
        self._clear(lock_id)
        new_id = self._append(Lock(
            amount=current.amount,
            locked_at=now,
            lock_duration=max_duration,
            owner=current.owner,
            recipient=current.recipient,
            shares=current.shares + extra,
        ))

        logger.info(f"Lock {lock_id} boosted to max as lock {new_id}, minted {extra} extra shares")
        self._emit("boosted", old_lock_id=lock_id, lock_id=new_id, owner=caller, extra_shares=extra)
        return new_id

    # --- Releases ---

    def withdraw(self, caller: str, lock_id: int, now: int) -> int:
        """
        Releases a matured lock to its owner. Returns the released amount.

        Raises:
            NotFound: unknown or already withdrawn lock
            NotOwner: caller is not the lock owner
            NotExpired: now < locked_at + lock_duration
        """
        current = self._active_lock(lock_id)
        if current.owner != caller:
            raise NotOwner(f"{caller} is not the owner of lock {lock_id}")
        if not current.is_expired(now):
            raise NotExpired(f"lock {lock_id} unlocks at {current.unlocks_at}, now {now}")

        self._check_funds({current.recipient: current.shares}, current.amount)
        self._release(lock_id, current)

        logger.info(f"Lock {lock_id}: {caller} withdrew {current.amount}, burned {current.shares} shares")
        self._emit("withdrawn", lock_id=lock_id, owner=caller, amount=current.amount, shares=current.shares)
        return current.amount

    def eject(self, caller: str, lock_ids: List[int], now: int) -> int:
        """
        Admin release of expired locks back to their owners.

        A lock is ejectable once eject_buffer seconds have passed after its
        maturity. The batch is validated as a whole before anything moves.
        Returns the total amount released.
        """
        self._require_admin(caller)
        if not lock_ids:
            raise InvalidOperation("no lock ids given")
        if len(set(lock_ids)) != len(lock_ids):
            raise InvalidOperation("duplicate lock ids")

        targets = []
        for lock_id in lock_ids:
            current = self._active_lock(lock_id)
            if now < current.unlocks_at + self.config.eject_buffer:
                raise NotExpired(
                    f"lock {lock_id} ejectable at {current.unlocks_at + self.config.eject_buffer}, now {now}"
                )
            targets.append((lock_id, current))

        burns: Dict[str, int] = {}
        for _, current in targets:
            burns[current.recipient] = burns.get(current.recipient, 0) + current.shares
        total = sum(current.amount for _, current in targets)
        self._check_funds(burns, total)

        for lock_id, current in targets:
            self._release(lock_id, current)
            self._emit("ejected", lock_id=lock_id, owner=current.owner, amount=current.amount, shares=current.shares)

        logger.info(f"Ejected {len(targets)} lock(s), released {total}")
        return total

    # --- Administration ---

    def set_min_lock_amount(self, caller: str, min_lock_amount: int) -> StakingConfig:
        return self.update_config(caller, min_lock_amount=min_lock_amount)

    def set_min_lock_duration(self, caller: str, min_lock_duration: int) -> StakingConfig:
        return self.update_config(caller, min_lock_duration=min_lock_duration)

    def set_max_lock_duration(self, caller: str, max_lock_duration: int) -> StakingConfig:
        return self.update_config(caller, max_lock_duration=max_lock_duration)

    def set_seconds_per_month(self, caller: str, seconds_per_month: int) -> StakingConfig:
        return self.update_config(caller, seconds_per_month=seconds_per_month)

    def update_config(self, caller: str, **changes) -> StakingConfig:
        """Validates and swaps in a new config version. Existing locks keep their recorded shares."""
        self._require_admin(caller)
        allowed = {"min_lock_duration", "max_lock_duration", "min_lock_amount", "seconds_per_month", "eject_buffer"}
        unknown = set(changes) - allowed
        if unknown:
            raise InvalidOperation(f"unknown config fields: {sorted(unknown)}")

        self.journal.set_attr(self, "config", self.config.updated(**changes), "config")
        logger.info(f"Staking config updated to v{self.config.version}: {changes}")
        self._emit("config_updated", version=self.config.version, changes=changes)
        return self.config

    # --- Internals ---

    def _require_admin(self, caller: str) -> None:
        if caller != self.admin:
            raise NotOwner(f"{caller} is not the ledger admin", code="!admin")

    def _active_lock(self, lock_id: int) -> Lock:
        current = self.lock(lock_id)
        if not current.is_active:
            raise NotFound(f"lock {lock_id} already withdrawn")
        return current

    def _check_funds(self, burns: Dict[str, int], total: int) -> None:
        share_token = self.authority.token
        for holder, shares in burns.items():
            if share_token.balance_of(holder) < shares:
                raise InvalidAmount(
                    f"{holder} holds {share_token.balance_of(holder)} shares, {shares} required"
                )
        if self.deposit_token.balance_of(self.custody) < total:
            raise TransferFailed(f"custody holds {self.total_locked}, {total} required")

    def _release(self, lock_id: int, current: Lock) -> None:
        self.authority.burn(current.recipient, current.shares)
        if not self.deposit_token.transfer(self.custody, current.owner, current.amount):
            raise TransferFailed(f"release of lock {lock_id} to {current.owner} failed")
        self._clear(lock_id)

    def _append(self, lock: Lock) -> int:
        lock_id = len(self.locks)
        self.journal.append(self.locks, lock, lock_key(lock_id))
        ids = self._owner_index.get(lock.owner)
        if ids is None:
            ids = {}
            self.journal.set_item(self._owner_index, lock.owner, ids)
        self.journal.set_item(ids, lock_id, None)
        self.journal.set_attr(self, "active_locks", self.active_locks + 1)
        return lock_id

    def _clear(self, lock_id: int) -> None:
        owner = self.locks[lock_id].owner
        ids = self._owner_index.get(owner)
        if ids is not None:
            self.journal.delete_item(ids, lock_id)
            if not ids:
                self.journal.delete_item(self._owner_index, owner)
        self.journal.set_index(self.locks, lock_id, Lock.cleared(), lock_key(lock_id))
        self.journal.set_attr(self, "active_locks", self.active_locks - 1)

    def restore(self, locks: List[Lock]) -> None:
        """Rebuilds the arena and owner index from persisted records."""
        self.locks = list(locks)
        self._owner_index = {}
        self.active_locks = 0
        for lock_id, lock in enumerate(self.locks):
            if lock.is_active:
                self._owner_index.setdefault(lock.owner, {})[lock_id] = None
                self.active_locks += 1
