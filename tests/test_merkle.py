import pytest

from sharelock.protocol.crypto.hash import sha256, hash_pair, merkle_root, process_proof, verify_proof, ZERO_HASH
from sharelock.protocol.crypto.merkle import MerkleTree, build_window_tree
from sharelock.protocol.crypto.addresses import module_address, decode_address
from sharelock.protocol.types.window import ClaimLeaf


def _leaves(n):
    return [sha256(bytes([i])) for i in range(n)]


def test_hash_pair_is_order_independent():
    a, b = sha256(b"a"), sha256(b"b")
    assert hash_pair(a, b) == hash_pair(b, a)
    assert hash_pair(a, b) == sha256(min(a, b) + max(a, b))


def test_tree_root_matches_merkle_root():
    for n in range(1, 10):
        leaves = _leaves(n)
        assert MerkleTree(leaves).root == merkle_root(leaves)


def test_single_leaf_tree():
    leaf = sha256(b"only")
    tree = MerkleTree([leaf])
    proof = tree.generate_proof(0)
    assert tree.root == leaf
    assert proof.proof_hashes == []
    assert verify_proof([], leaf, leaf)


def test_every_proof_verifies():
    for n in (2, 3, 5, 8):
        tree = MerkleTree(_leaves(n))
        for i in range(n):
            proof = tree.generate_proof(i)
            assert tree.verify(proof)
            assert process_proof(proof.leaf_hash, proof.proof_hashes) == tree.root


def test_tampered_proof_fails():
    tree = MerkleTree(_leaves(4))
    proof = tree.generate_proof(1)
    bad = list(proof.proof_hashes)
    bad[0] = sha256(b"tampered")
    assert not verify_proof(bad, tree.root, proof.leaf_hash)
    assert not verify_proof(proof.proof_hashes, tree.root, sha256(b"other leaf"))


def test_generate_proof_out_of_range():
    tree = MerkleTree(_leaves(3))
    with pytest.raises(ValueError):
        tree.generate_proof(3)
    with pytest.raises(ValueError):
        MerkleTree([])


def test_empty_merkle_root_is_zero():
    assert merkle_root([]) == ZERO_HASH


def test_claim_leaf_encoding():
    account = module_address("recipient")
    leaf = ClaimLeaf(window_index=2, account_index=7, account=account, amount=1000)
    encoded = leaf.encode()

    assert len(encoded) == 32 + 20 + 32 + 32
    assert encoded[:32] == (7).to_bytes(32, "big")
    assert encoded[32:52] == decode_address(account)[1]
    assert encoded[52:84] == (1000).to_bytes(32, "big")
    assert encoded[84:] == (2).to_bytes(32, "big")
    assert leaf.leaf_hash() == sha256(encoded)


def test_claim_leaf_rejects_bad_account():
    with pytest.raises(ValueError):
        ClaimLeaf(window_index=0, account_index=0, account="not-an-address", amount=1).encode()


def test_build_window_tree():
    leaves = [
        ClaimLeaf(window_index=0, account_index=i, account=module_address(f"acct-{i}"), amount=(i + 1) * 10)
        for i in range(5)
    ]
    root_hex, proofs = build_window_tree(leaves)

    root = bytes.fromhex(root_hex)
    for leaf in leaves:
        proof = [bytes.fromhex(h) for h in proofs[leaf.account_index]]
        assert verify_proof(proof, root, leaf.leaf_hash())


def test_build_window_tree_rejects_duplicate_index():
    account = module_address("acct")
    leaves = [
        ClaimLeaf(window_index=0, account_index=1, account=account, amount=1),
        ClaimLeaf(window_index=0, account_index=1, account=account, amount=2),
    ]
    with pytest.raises(ValueError):
        build_window_tree(leaves)
