# MIT License
# Copyright (c) 2025 Hashborn

from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
import json
import logging
import re

from pydantic import ValidationError as PydanticValidationError

from .accounts import TokenLedger, ShareToken
from .journal import ChangeJournal, allowance_key, balance_key, nonce_key, lock_key, window_key, claimed_key, paid_key
from .locks import LockLedger
from .windows import WindowRegistry
from .claims import ClaimVerifier
from ...protocol.types.tx import Operation
from ...protocol.types.lock import Lock
from ...protocol.types.window import Claim, Window
from ...protocol.types.common import (
    OpType,
    AlreadyInitialized,
    InvalidNonce,
    InvalidOperation,
    InvalidSignature,
)
from ...protocol.crypto.hash import sha256, sha256_hex, merkle_root
from ...protocol.crypto.addresses import (
    ZERO_ADDRESS,
    address_from_pubkey,
    decode_address,
    is_valid_address,
    module_address,
)
from ...protocol.crypto.keys import verify
from ...protocol.config.params import StakingConfig
from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

DEPOSIT_SYMBOL = "DEP"
SHARE_SYMBOL = "SHR"
REWARD_SYMBOL = "RWD"

# Keyless module accounts holding locked principal and unclaimed rewards
LOCK_CUSTODY = module_address("lock-custody")
DISTRIBUTOR_CUSTODY = module_address("distributor-custody")

# ASCII digits only; str.isdigit() also accepts superscripts int() rejects
_INT_STRING = re.compile(r"-?[0-9]+")


class LedgerState:
    """
    Whole ledger state: the three token ledgers, the lock arena, the window
    history, the claim bitmap and per-sender nonces.

    Every component shares one ChangeJournal. The executor opens it with
    begin(), then either commit()s the touched keys to storage or
    rollback()s the in-memory changes.
    """

    def __init__(self):
        self.journal = ChangeJournal()
        self.deposit_token = TokenLedger(DEPOSIT_SYMBOL, journal=self.journal)
        self.share_token = ShareToken(SHARE_SYMBOL, journal=self.journal)
        self.reward_token = TokenLedger(REWARD_SYMBOL, journal=self.journal)

        self.admin: str = ZERO_ADDRESS
        self.initialized = False
        self.nonces: Dict[str, int] = {}
        self.pending_events: List[Tuple[str, Dict[str, Any]]] = []

        self.locks: Optional[LockLedger] = None
        self.windows: Optional[WindowRegistry] = None
        self.claims: Optional[ClaimVerifier] = None

    def initialize(self, admin: str, config: StakingConfig) -> None:
        """
        Binds the admin and the staking config and issues the share mint
        authority to the lock ledger. Allowed once.
        """
        if self.initialized:
            raise AlreadyInitialized(f"ledger already initialized with admin {self.admin}")
        if not admin:
            raise InvalidOperation("admin required")
        config.validate()

        authority = self.share_token.issue_authority()
        journal = self.journal
        journal.set_attr(self, "admin", admin, "meta:admin")
        journal.set_attr(self, "locks", LockLedger(self.deposit_token, authority, config, admin, LOCK_CUSTODY,
                                                   emit=self.record_event, journal=journal), "config")
        journal.set_attr(self, "windows", WindowRegistry(admin, emit=self.record_event, journal=journal))
        journal.set_attr(self, "claims", ClaimVerifier(self.windows, self.reward_token, admin, DISTRIBUTOR_CUSTODY,
                                                       emit=self.record_event, journal=journal))
        journal.set_attr(self, "initialized", True, "meta:initialized")
        logger.info(f"Ledger initialized: admin {admin}, staking config v{config.version}")

    @property
    def config(self) -> Optional[StakingConfig]:
        return self.locks.config if self.locks else None

    def token(self, name: str) -> TokenLedger:
        tokens = {"deposit": self.deposit_token, "share": self.share_token, "reward": self.reward_token}
        if name not in tokens:
            raise InvalidOperation(f"unknown token '{name}'")
        return tokens[name]

    # --- Events ---

    def record_event(self, event_type: str, **data) -> None:
        self.pending_events.append((event_type, data))

    def drain_events(self) -> List[Tuple[str, Dict[str, Any]]]:
        events, self.pending_events = self.pending_events, []
        return events

    # --- Nonces ---

    def get_nonce(self, address: str) -> int:
        return self.nonces.get(address, 0)

    def bump_nonce(self, address: str) -> None:
        self.journal.set_item(self.nonces, address, self.get_nonce(address) + 1, nonce_key(address))

    # --- Change tracking ---

    def begin(self) -> None:
        self.journal.begin()

    def commit(self, db: StorageDB, operation: Optional[Tuple[str, str, str, int, str]] = None) -> Optional[int]:
        """
        Writes the keys touched since begin() (and the journal entry) in one
        transaction, then keeps the changes. Returns the journal sequence
        number. On a storage error the caller still has to rollback().
        """
        seq = db.write_state(self.entries_for(self.journal.dirty), operation)
        self.journal.commit()
        return seq

    def rollback(self) -> None:
        self.journal.rollback()
        self.pending_events = []

    # --- Operations ---

    def verify_operation(self, op: Operation) -> None:
        if not op.signature or not op.pub_key:
            raise InvalidSignature("missing signature or pub_key")

        try:
            prefix, _ = decode_address(op.sender)
            derived = address_from_pubkey(bytes.fromhex(op.pub_key), prefix=prefix)
        except ValueError as e:
            raise InvalidSignature(f"invalid sender or key: {e}")
        if derived != op.sender:
            raise InvalidSignature(f"pub_key mismatch: derived {derived}, expected {op.sender}")

        try:
            sig_bytes = bytes.fromhex(op.signature)
            pub_bytes = bytes.fromhex(op.pub_key)
        except ValueError as e:
            raise InvalidSignature(f"malformed signature: {e}")
        if not verify(bytes.fromhex(op.hash()), sig_bytes, pub_bytes):
            raise InvalidSignature("signature does not match operation")

    def apply_operation(self, op: Operation, now: int) -> Any:
        """
        Verifies and applies one operation in place. Raises LedgerError on
        failure; the caller then rollback()s the journal.
        """
        self.verify_operation(op)

        expected = self.get_nonce(op.sender)
        if op.nonce != expected:
            raise InvalidNonce(f"invalid nonce for {op.sender}: expected {expected}, got {op.nonce}")
        if not self.initialized:
            raise InvalidOperation("ledger not initialized")

        handler = self._handlers().get(op.op_type)
        if handler is None:
            raise InvalidOperation(f"unsupported operation {op.op_type}")

        result = handler(op.sender, op.payload, now)
        self.bump_nonce(op.sender)
        return result

    def _handlers(self) -> Dict[OpType, Callable]:
        return {
            OpType.DEPOSIT: self._op_deposit,
            OpType.DEPOSIT_BY_MONTHS: self._op_deposit_by_months,
            OpType.WITHDRAW: lambda s, p, now: self.locks.withdraw(s, _int(p, "lock_id"), now),
            OpType.BOOST_TO_MAX: lambda s, p, now: self.locks.boost_to_max(s, _int(p, "lock_id"), now),
            OpType.EJECT: lambda s, p, now: self.locks.eject(s, _int_list(p, "lock_ids"), now),
            OpType.PUBLISH_WINDOW: self._op_publish_window,
            OpType.CLAIM: lambda s, p, now: self.claims.claim_many([_claim(p)]),
            OpType.CLAIM_MANY: self._op_claim_many,
            OpType.FUND_REWARDS: lambda s, p, now: self.claims.fund_rewards(s, _int(p, "amount")),
            OpType.WITHDRAW_REWARDS: self._op_withdraw_rewards,
            OpType.APPROVE: self._op_approve,
            OpType.SET_CONFIG: self._op_set_config,
        }

    def _op_deposit(self, sender: str, payload: dict, now: int) -> int:
        recipient = _address(payload, "recipient", sender)
        return self.locks.deposit(sender, _int(payload, "amount"), _int(payload, "duration"), recipient, now)

    def _op_deposit_by_months(self, sender: str, payload: dict, now: int) -> int:
        recipient = _address(payload, "recipient", sender)
        return self.locks.deposit_by_months(sender, _int(payload, "amount"), _int(payload, "months"), recipient, now)

    def _op_publish_window(self, sender: str, payload: dict, now: int) -> int:
        return self.windows.publish_window(
            sender,
            str(payload.get("merkle_root", "")),
            _int(payload, "total_allocated"),
            metadata=str(payload.get("metadata", "")),
            now=now,
        )

    def _op_claim_many(self, sender: str, payload: dict, now: int) -> int:
        claims = payload.get("claims")
        if not isinstance(claims, list):
            raise InvalidOperation("payload field 'claims' must be a list")
        return self.claims.claim_many([_claim(c) for c in claims])

    def _op_withdraw_rewards(self, sender: str, payload: dict, now: int) -> int:
        return self.claims.withdraw_rewards(sender, _int(payload, "amount"), to=_address(payload, "to", sender))

    def _op_approve(self, sender: str, payload: dict, now: int) -> bool:
        name = payload.get("token", "deposit")
        if name == "share":
            raise InvalidOperation("share token is non-transferable")
        token = self.token(name)
        default_spender = LOCK_CUSTODY if name == "deposit" else DISTRIBUTOR_CUSTODY
        spender = _address(payload, "spender", default_spender)
        amount = _int(payload, "amount")
        if not token.approve(sender, spender, amount):
            raise InvalidOperation(f"approve of {amount} rejected")
        self.record_event("approved", token=token.symbol, owner=sender, spender=spender, amount=amount)
        return True

    def _op_set_config(self, sender: str, payload: dict, now: int) -> dict:
        changes = payload.get("changes", payload)
        if not isinstance(changes, dict) or not changes:
            raise InvalidOperation("no config changes given")
        new_config = self.locks.update_config(sender, **{k: _int(changes, k) for k in changes})
        return new_config.to_dict()

    # --- Persistence ---

    def to_entries(self) -> Dict[str, str]:
        """Canonical key-value rendering of the whole state."""
        entries: Dict[str, str] = {
            "meta:admin": json.dumps(self.admin),
            "meta:initialized": json.dumps(self.initialized),
        }
        for token in (self.deposit_token, self.share_token, self.reward_token):
            for addr, balance in token.balances.items():
                if balance:
                    entries[balance_key(token.symbol, addr)] = json.dumps(balance)
            for owner, spenders in token.allowances.items():
                for spender, amount in spenders.items():
                    if amount:
                        entries[allowance_key(token.symbol, owner, spender)] = json.dumps(amount)
        for addr, nonce in self.nonces.items():
            entries[nonce_key(addr)] = json.dumps(nonce)

        if self.initialized:
            entries["config"] = json.dumps(self.config.to_dict(), sort_keys=True)
            for lock_id, lock in enumerate(self.locks.locks):
                entries[lock_key(lock_id)] = lock.model_dump_json()
            for window in self.windows.windows:
                entries[window_key(window.index)] = window.model_dump_json()
            for window_index, words in self.claims.claimed.words.items():
                for word_index, word in words.items():
                    entries[claimed_key(window_index, word_index)] = json.dumps(word)
            for window_index, paid in self.claims.paid.items():
                entries[paid_key(window_index)] = json.dumps(paid)
        return entries

    def entries_for(self, keys: Iterable[str]) -> Dict[str, Optional[str]]:
        """
        Current value of each key as to_entries() renders it, or None where
        the entry no longer exists (zeroed balances and allowances).
        """
        return {key: self._entry(key) for key in keys}

    def _entry(self, key: str) -> Optional[str]:
        if key == "meta:admin":
            return json.dumps(self.admin)
        if key == "meta:initialized":
            return json.dumps(self.initialized)
        if key == "config":
            return json.dumps(self.config.to_dict(), sort_keys=True) if self.initialized else None

        kind, _, rest = key.partition(":")
        if kind == "bal":
            symbol, addr = rest.split(":", 1)
            value = self._by_symbol(symbol).balance_of(addr)
        elif kind == "allow":
            symbol, owner, spender = rest.split(":", 2)
            value = self._by_symbol(symbol).allowance(owner, spender)
        elif kind == "nonce":
            return json.dumps(self.nonces[rest]) if rest in self.nonces else None
        elif kind == "lock":
            return self.locks.locks[int(rest)].model_dump_json()
        elif kind == "window":
            return self.windows.windows[int(rest)].model_dump_json()
        elif kind == "claimed":
            window_index, word_index = (int(part) for part in rest.split(":"))
            value = self.claims.claimed.words.get(window_index, {}).get(word_index, 0)
        elif kind == "paid":
            value = self.claims.paid.get(int(rest), 0)
        else:
            raise KeyError(f"unknown state key {key}")
        return json.dumps(value) if value else None

    def _by_symbol(self, symbol: str) -> TokenLedger:
        for token in (self.deposit_token, self.share_token, self.reward_token):
            if token.symbol == symbol:
                return token
        raise KeyError(f"unknown token symbol {symbol}")

    def persist(self, db: StorageDB, operation: Optional[Tuple[str, str, str, int, str]] = None) -> None:
        """Writes a full snapshot, replacing whatever the db held."""
        db.replace_state(self.to_entries(), operation)

    @classmethod
    def load(cls, db: StorageDB) -> 'LedgerState':
        """Restores a state written by persist(). An empty db yields a fresh state."""
        entries = db.get_state_by_prefix("")
        state = cls()
        if not entries:
            return state

        tokens = {t.symbol: t for t in (state.deposit_token, state.share_token, state.reward_token)}
        locks: Dict[int, Lock] = {}
        windows: Dict[int, Window] = {}
        words: Dict[int, Dict[int, int]] = {}
        paid: Dict[int, int] = {}

        for key, value in entries.items():
            kind, _, rest = key.partition(":")
            if kind == "bal":
                symbol, addr = rest.split(":", 1)
                tokens[symbol].balances[addr] = json.loads(value)
            elif kind == "allow":
                symbol, owner, spender = rest.split(":", 2)
                tokens[symbol].allowances.setdefault(owner, {})[spender] = json.loads(value)
            elif kind == "nonce":
                state.nonces[rest] = json.loads(value)
            elif kind == "lock":
                locks[int(rest)] = Lock.model_validate_json(value)
            elif kind == "window":
                windows[int(rest)] = Window.model_validate_json(value)
            elif kind == "claimed":
                window_index, word_index = rest.split(":")
                words.setdefault(int(window_index), {})[int(word_index)] = json.loads(value)
            elif kind == "paid":
                paid[int(rest)] = json.loads(value)

        for token in tokens.values():
            token.total_supply = sum(token.balances.values())

        if json.loads(entries.get("meta:initialized", "false")):
            config = StakingConfig(**json.loads(entries["config"]))
            state.initialize(json.loads(entries["meta:admin"]), config)
            state.locks.restore([locks[i] for i in sorted(locks)])
            state.windows.windows = [windows[i] for i in sorted(windows)]
            state.claims.claimed.words = words
            state.claims.paid = paid

        logger.info(f"Loaded ledger state: {len(entries)} entries, {len(locks)} locks, {len(windows)} windows")
        return state

    def state_root(self) -> str:
        """Merkle root over the canonical entries, sorted by key."""
        entries = self.to_entries()
        leaves = [sha256(f"{key}={entries[key]}".encode("utf-8")) for key in sorted(entries)]
        if not leaves:
            return sha256_hex(b"")
        return merkle_root(leaves).hex()


def _int(payload: dict, key: str) -> int:
    value = payload.get(key)
    # bool is an int subclass; JSON true/false is never a valid amount
    if isinstance(value, bool):
        raise InvalidOperation(f"payload field '{key}' must be an integer")
    if isinstance(value, str) and _INT_STRING.fullmatch(value):
        return int(value)
    if not isinstance(value, int):
        raise InvalidOperation(f"payload field '{key}' must be an integer, got {value!r}")
    return value


def _int_list(payload: dict, key: str) -> List[int]:
    values = payload.get(key)
    if not isinstance(values, list):
        raise InvalidOperation(f"payload field '{key}' must be a list")
    return [_int({key: v}, key) for v in values]


def _claim(data: Any) -> Claim:
    if not isinstance(data, dict):
        raise InvalidOperation("claim must be an object")
    try:
        return Claim(**data)
    except PydanticValidationError as e:
        raise InvalidOperation(f"malformed claim: {e.error_count()} error(s)")


def _address(payload: dict, key: str, default: str) -> str:
    value = payload.get(key) or default
    if not isinstance(value, str) or not is_valid_address(value):
        raise InvalidOperation(f"payload field '{key}' is not a valid address: {value!r}")
    return value
