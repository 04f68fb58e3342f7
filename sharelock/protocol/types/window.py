from pydantic import BaseModel, ConfigDict, Field
from typing import List
from ..crypto.hash import sha256
from ..crypto.addresses import decode_address

# Fixed widths of the leaf preimage: index(32) | account(20) | amount(32) | window(32)
INT_WIDTH = 32
ACCOUNT_WIDTH = 20


class Window(BaseModel):
    """One published distribution round. Never mutated after publication."""
    model_config = ConfigDict(frozen=True)

    index: int
    merkle_root: str            # hex, 32 bytes
    total_allocated: int
    metadata: str = ""          # opaque pointer (IPFS hash, URL)
    published_at: int = 0


class ClaimLeaf(BaseModel):
    """Entry of a window's allocation list, as hashed into the tree."""
    window_index: int
    account_index: int
    account: str
    amount: int

    def encode(self) -> bytes:
        """
        Canonical leaf preimage.

        account_index || account || amount || window_index, integers as
        32-byte big-endian, the account as the 20-byte bech32 payload.
        Raises ValueError for a malformed account or out-of-range integers.
        """
        _, account_bytes = decode_address(self.account)
        if len(account_bytes) != ACCOUNT_WIDTH:
            raise ValueError(f"Account payload must be {ACCOUNT_WIDTH} bytes, got {len(account_bytes)}")
        return (
            self.account_index.to_bytes(INT_WIDTH, 'big')
            + account_bytes
            + self.amount.to_bytes(INT_WIDTH, 'big')
            + self.window_index.to_bytes(INT_WIDTH, 'big')
        )

    def leaf_hash(self) -> bytes:
        return sha256(self.encode())


class Claim(BaseModel):
    window_index: int
    amount: int
    account_index: int
    account: str
    merkle_proof: List[str] = Field(default_factory=list)   # hex sibling hashes, leaf to root

    def leaf(self) -> ClaimLeaf:
        return ClaimLeaf(
            window_index=self.window_index,
            account_index=self.account_index,
            account=self.account,
            amount=self.amount,
        )
