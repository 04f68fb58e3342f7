# MIT License
# Copyright (c) 2025 Hashborn

from dataclasses import replace
from typing import Any, Optional
import json
import logging
import os
import threading
import time

from .state import LedgerState
from .events import EventBus
from .receipts import OperationReceipt, ReceiptStore
from ..storage.db import StorageDB
from ..observability.metrics import update_metrics, update_operation_metrics
from ...protocol.types.tx import Operation
from ...protocol.types.common import LedgerError
from ...protocol.config.params import CURRENT_NETWORK, NetworkConfig, StakingConfig

logger = logging.getLogger(__name__)


class Ledger:
    """
    Operation executor.

    Serializes every state change behind one re-entrant lock. An operation
    is applied in place with the change journal open; only the keys it
    touched are written (together with the journal entry, in one sqlite
    transaction). Any failure rolls the in-memory changes back. Events are
    published after the commit.
    """

    def __init__(self, db_path: str, network: NetworkConfig = None, event_bus: EventBus = None):
        self.db = StorageDB(db_path)
        self._lock = threading.RLock()
        self.config = network or CURRENT_NETWORK
        self.events = event_bus or EventBus()
        self.receipts = ReceiptStore(self.config.max_receipts)

        self.genesis_path = os.path.join(os.path.dirname(db_path), "genesis.json")
        self.state = LedgerState.load(self.db)
        if self.db.get_state("meta:initialized") is None:
            logger.info("Ledger state empty (applying genesis)")
            self._apply_genesis()
        else:
            logger.info(f"Ledger loaded: {self.db.count_operations()} operations applied")

    def _apply_genesis(self):
        """
        Loads genesis.json next to the database if it exists:

            {"admin": "<address>",
             "staking": {<StakingConfig overrides>},
             "alloc": {"deposit": {"<address>": amount}, "reward": {...}}}

        Without an admin entry the ledger stays uninitialized until
        initialize() is called.
        """
        if not os.path.exists(self.genesis_path):
            logger.warning("No genesis.json found. Starting uninitialized with 0 balances.")
            return

        with open(self.genesis_path, "r") as f:
            data = json.load(f)

        state = LedgerState()
        count = 0
        for token_name, alloc in data.get("alloc", {}).items():
            token = state.token(token_name)
            for address, amount in alloc.items():
                token.mint(address, int(amount))
                count += 1

        admin = data.get("admin")
        if admin:
            staking = replace(self.config.staking, **data.get("staking", {}))
            state.initialize(admin, staking)
        state.drain_events()

        state.persist(self.db)
        self.state = state
        logger.info(f"Applied genesis allocation to {count} accounts.")

    # --- Setup ---

    def initialize(self, admin: str, config: Optional[StakingConfig] = None) -> None:
        """Binds admin and staking config. Raises AlreadyInitialized on a second call."""
        with self._lock:
            state = self.state
            state.begin()
            try:
                state.initialize(admin, config or self.config.staking)
                state.drain_events()
                state.commit(self.db)
            except Exception:
                state.rollback()
                raise
            update_metrics(self)

    # --- Operations ---

    def apply_operation(self, op: Operation, now: int = None) -> Any:
        """
        Applies one signed operation atomically and returns its result.

        Raises:
            LedgerError: the operation was rejected; committed state is unchanged
        """
        return self._apply(op, now)[0]

    def _apply(self, op: Operation, now: Optional[int]):
        now = int(time.time()) if now is None else now
        op_hash = op.hash()
        with self._lock:
            state = self.state
            state.begin()
            try:
                result = state.apply_operation(op, now)
                events = state.drain_events()
                seq = state.commit(self.db, (op_hash, op.op_type.value, op.sender, now, op.model_dump_json()))
            except Exception:
                state.rollback()
                raise

        logger.info(f"Applied {op.op_type.value} #{seq} from {op.sender} ({op_hash[:16]}...)")
        for event_type, data in events:
            self.events.emit(event_type, **data)
        return result, seq, events, now

    def submit(self, op: Operation, now: int = None) -> OperationReceipt:
        """
        Applies an operation and records its outcome. Never raises for a
        rejected operation; the receipt carries the error kind and code.
        """
        op_hash = op.hash()
        started = time.perf_counter()
        try:
            result, seq, events, applied_at = self._apply(op, now)
            receipt = OperationReceipt(
                op_hash=op_hash,
                op_type=op.op_type.value,
                status='applied',
                seq=seq,
                timestamp=applied_at,
                result=result,
                events=events,
            )
            self.events.emit("op_applied", op_hash=op_hash, op_type=op.op_type.value, seq=seq)
        except LedgerError as e:
            logger.warning(f"Rejected {op.op_type.value} from {op.sender}: {e.kind} ({e.code}) {e.message}")
            receipt = OperationReceipt(
                op_hash=op_hash,
                op_type=op.op_type.value,
                status='failed',
                timestamp=now or 0,
                error_kind=e.kind,
                error_code=e.code,
                error=e.message,
            )
            self.events.emit("op_failed", op_hash=op_hash, op_type=op.op_type.value, kind=e.kind, code=e.code)

        update_operation_metrics(receipt, time.perf_counter() - started)
        receipt = self.receipts.add(receipt)
        update_metrics(self)
        return receipt

    # --- Reads ---

    def get_nonce(self, address: str) -> int:
        return self.state.get_nonce(address)

    def get_receipt(self, op_hash: str) -> Optional[OperationReceipt]:
        return self.receipts.get(op_hash)

    def state_root(self) -> str:
        return self.state.state_root()

    def close(self):
        self.db.close()
