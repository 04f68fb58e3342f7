"""
Operation receipt tracking.

Stores the outcome of every submitted operation for querying.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import time
import logging
from threading import RLock

logger = logging.getLogger(__name__)


@dataclass
class OperationReceipt:
    """
    Outcome of one submitted operation.

    Attributes:
        op_hash: Operation hash
        op_type: Operation type value
        status: 'applied' or 'failed'
        seq: Position in the global serialization order (None if failed)
        timestamp: Ledger time the operation was applied at
        result: Return value of the operation (lock id, amount paid, ...)
        error_kind: LedgerError kind if the operation failed
        error_code: Short fixed error code if the operation failed
        error: Diagnostic message if the operation failed
    """
    op_hash: str
    op_type: str
    status: str
    seq: Optional[int] = None
    timestamp: int = 0
    result: Any = None
    error_kind: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    events: list = field(default_factory=list)

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time())

    @property
    def ok(self) -> bool:
        return self.status == 'applied'

    def to_dict(self) -> dict:
        return {
            "op_hash": self.op_hash,
            "op_type": self.op_type,
            "status": self.status,
            "seq": self.seq,
            "timestamp": self.timestamp,
            "result": self.result,
            "error_kind": self.error_kind,
            "error_code": self.error_code,
            "error": self.error,
            "events": [{"type": t, "data": d} for t, d in self.events],
        }


class ReceiptStore:
    """
    In-memory store for operation receipts.

    Keeps at most `max_receipts`; the oldest 10% are dropped when the limit
    is exceeded.
    """

    def __init__(self, max_receipts: int = 10000):
        self.receipts: Dict[str, OperationReceipt] = {}
        self.max_receipts = max_receipts
        self.lock = RLock()

    def add(self, receipt: OperationReceipt) -> OperationReceipt:
        with self.lock:
            existing = self.receipts.get(receipt.op_hash)
            # An applied receipt is final; a replayed copy must not hide it
            if existing and existing.ok and not receipt.ok:
                return existing

            self.receipts[receipt.op_hash] = receipt
            if len(self.receipts) > self.max_receipts:
                self._cleanup_old_receipts()

            logger.debug(f"Receipt {receipt.op_hash[:16]}...: {receipt.status}")
            return receipt

    def get(self, op_hash: str) -> Optional[OperationReceipt]:
        with self.lock:
            return self.receipts.get(op_hash)

    def _cleanup_old_receipts(self) -> None:
        num_to_remove = max(len(self.receipts) // 10, 1)

        # dicts keep insertion order, oldest first
        for op_hash in list(self.receipts)[:num_to_remove]:
            del self.receipts[op_hash]

        logger.info(f"Cleaned up {num_to_remove} old receipts (total: {len(self.receipts)})")

    def clear(self) -> None:
        with self.lock:
            self.receipts.clear()
