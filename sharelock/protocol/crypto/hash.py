import hashlib
from typing import List

ZERO_HASH = b'\x00' * 32


def sha256(data: bytes) -> bytes:
    """Returns SHA256 hash of bytes."""
    return hashlib.sha256(data).digest()


def sha256_hex(data: bytes) -> str:
    """Returns SHA256 hash of bytes as hex string."""
    return sha256(data).hex()


def ripemd160(data: bytes) -> bytes:
    """Returns RIPEMD160 hash of bytes."""
    h = hashlib.new('ripemd160')
    h.update(data)
    return h.digest()


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hashes two sibling nodes, smaller one first."""
    if a <= b:
        return sha256(a + b)
    return sha256(b + a)


def merkle_root(hashes: List[bytes]) -> bytes:
    """Calculates sorted-pair Merkle Root for a list of hashes."""
    if not hashes:
        return ZERO_HASH

    if len(hashes) == 1:
        return hashes[0]

    new_level = []
    for i in range(0, len(hashes), 2):
        left = hashes[i]
        right = hashes[i+1] if i+1 < len(hashes) else left
        new_level.append(hash_pair(left, right))

    return merkle_root(new_level)


def process_proof(leaf: bytes, proof: List[bytes]) -> bytes:
    """Folds a proof bottom-up starting from the leaf and returns the computed root."""
    computed = leaf
    for sibling in proof:
        computed = hash_pair(computed, sibling)
    return computed


def verify_proof(proof: List[bytes], root: bytes, leaf: bytes) -> bool:
    return process_proof(leaf, proof) == root
