from pydantic import BaseModel, Field
from typing import List, Tuple
from ..crypto.addresses import ZERO_ADDRESS


class Lock(BaseModel):
    amount: int                         # principal in custody, minimal units
    locked_at: int                      # unix timestamp of deposit (or last boost)
    lock_duration: int                  # seconds
    owner: str                          # depositor, the only account allowed to withdraw
    recipient: str = ZERO_ADDRESS       # holder of the minted shares
    shares: int = 0                     # exact amount minted for this lock

    @property
    def is_active(self) -> bool:
        return self.amount > 0

    @property
    def unlocks_at(self) -> int:
        return self.locked_at + self.lock_duration

    def is_expired(self, now: int) -> bool:
        return now >= self.unlocks_at

    @classmethod
    def cleared(cls) -> 'Lock':
        """Record left behind in a withdrawn slot."""
        return cls(amount=0, locked_at=0, lock_duration=0, owner=ZERO_ADDRESS)


class StakingData(BaseModel):
    """Per-account view of the lock ledger."""
    account: str
    locks: List[Tuple[int, Lock]] = Field(default_factory=list)   # (lock_id, lock), active only
    share_balance: int = 0
    deposit_balance: int = 0
    total_locked: int = 0
    locks_length: int = 0
    min_lock_duration: int = 0
    max_lock_duration: int = 0
    min_lock_amount: int = 0
