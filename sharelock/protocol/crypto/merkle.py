"""
Merkle tree for reward windows.

Builds the sorted-pair tree a window root is published from and produces
the inclusion proofs recipients submit with their claims. Verification
lives in hash.verify_proof.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .hash import hash_pair, verify_proof
from ..types.window import ClaimLeaf

logger = logging.getLogger(__name__)


@dataclass
class MerkleProof:
    """Merkle proof for a specific leaf"""

    leaf_index: int
    leaf_hash: bytes
    proof_hashes: List[bytes]  # Sibling hashes from leaf to root

    def to_hex(self) -> List[str]:
        return [h.hex() for h in self.proof_hashes]


class MerkleTree:
    """
    Sorted-pair Merkle tree.

    Siblings are hashed smaller-first, so proofs carry no direction bits.
    An odd node at the end of a level is paired with itself.
    """

    def __init__(self, leaf_hashes: List[bytes]):
        if not leaf_hashes:
            raise ValueError("leaf_hashes cannot be empty")

        self.leaf_hashes = list(leaf_hashes)
        self.leaf_count = len(leaf_hashes)
        self.levels: List[List[bytes]] = []
        self._build_tree()

        logger.debug(f"Built Merkle tree with {self.leaf_count} leaves")

    def _build_tree(self) -> None:
        current_level = self.leaf_hashes
        self.levels.append(current_level)

        while len(current_level) > 1:
            next_level = []
            for i in range(0, len(current_level), 2):
                left = current_level[i]
                right = current_level[i + 1] if i + 1 < len(current_level) else left
                next_level.append(hash_pair(left, right))
            self.levels.append(next_level)
            current_level = next_level

    @property
    def root(self) -> bytes:
        return self.levels[-1][0]

    def generate_proof(self, leaf_index: int) -> MerkleProof:
        if not (0 <= leaf_index < self.leaf_count):
            raise ValueError(
                f"leaf_index {leaf_index} out of range [0, {self.leaf_count})"
            )

        proof_hashes = []
        pos = leaf_index
        for level in self.levels[:-1]:
            sibling = pos ^ 1
            proof_hashes.append(level[sibling] if sibling < len(level) else level[pos])
            pos //= 2

        return MerkleProof(
            leaf_index=leaf_index,
            leaf_hash=self.leaf_hashes[leaf_index],
            proof_hashes=proof_hashes,
        )

    def verify(self, proof: MerkleProof) -> bool:
        return verify_proof(proof.proof_hashes, self.root, proof.leaf_hash)


def build_window_tree(leaves: List[ClaimLeaf]) -> Tuple[str, Dict[int, List[str]]]:
    """
    Builds the tree for one window's allocation list.

    Returns (root_hex, {account_index: proof_hex}). Account indexes must be
    unique within a window; they key the claimed bitmap.
    """
    if not leaves:
        raise ValueError("leaves cannot be empty")

    seen = set()
    for leaf in leaves:
        if leaf.account_index in seen:
            raise ValueError(f"Duplicate account_index {leaf.account_index}")
        seen.add(leaf.account_index)

    tree = MerkleTree([leaf.leaf_hash() for leaf in leaves])
    proofs = {
        leaf.account_index: tree.generate_proof(i).to_hex()
        for i, leaf in enumerate(leaves)
    }
    return tree.root.hex(), proofs
