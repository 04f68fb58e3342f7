"""
Tests for the claim verifier.

Tests:
- A valid proof pays exactly once
- Tampered amount, account or proof fail with InvalidProof
- Unknown windows, replays and under-funded custody are rejected with no side effects
- claim_many is all-or-nothing
- Remaining allocation and custody management
"""
import pytest

from sharelock.ledger.core.accounts import TokenLedger
from sharelock.ledger.core.claims import ClaimBitmap, ClaimVerifier
from sharelock.ledger.core.windows import WindowRegistry
from sharelock.protocol.crypto.addresses import module_address
from sharelock.protocol.crypto.hash import sha256
from sharelock.protocol.crypto.merkle import build_window_tree
from sharelock.protocol.types.window import Claim, ClaimLeaf
from sharelock.protocol.types.common import (
    AlreadyClaimed,
    InvalidAmount,
    InvalidOperation,
    InvalidProof,
    NotOwner,
    TransferFailed,
    UnknownWindow,
)

ADMIN = module_address("test-admin")
CUSTODY = module_address("distributor-custody")
ACCOUNTS = [module_address(f"recipient-{i}") for i in range(5)]
AMOUNTS = [100, 250, 75, 1000, 5]


class Distribution:
    def __init__(self, funded: int = None):
        self.reward_token = TokenLedger("RWD")
        self.registry = WindowRegistry(ADMIN)
        self.events = []
        self.verifier = ClaimVerifier(
            self.registry,
            self.reward_token,
            ADMIN,
            CUSTODY,
            emit=lambda event_type, **data: self.events.append((event_type, data)),
        )
        self.reward_token.mint(CUSTODY, sum(AMOUNTS) if funded is None else funded)

    def publish(self, amounts=AMOUNTS, total: int = None):
        window_index = self.registry.get_windows_length()
        self.leaves = [
            ClaimLeaf(window_index=window_index, account_index=i, account=ACCOUNTS[i], amount=amount)
            for i, amount in enumerate(amounts)
        ]
        root, self.proofs = build_window_tree(self.leaves)
        self.registry.publish_window(ADMIN, root, sum(amounts) if total is None else total)
        return window_index

    def claim_for(self, i: int, window_index: int = 0, **overrides) -> Claim:
        leaf = self.leaves[i]
        data = dict(
            window_index=window_index,
            amount=leaf.amount,
            account_index=leaf.account_index,
            account=leaf.account,
            merkle_proof=self.proofs[leaf.account_index],
        )
        data.update(overrides)
        return Claim(**data)


@pytest.fixture
def dist():
    d = Distribution()
    d.publish()
    return d


def test_valid_claim_pays_once(dist):
    paid = dist.verifier.claim(0, 250, 1, ACCOUNTS[1], dist.proofs[1])

    assert paid == 250
    assert dist.reward_token.balance_of(ACCOUNTS[1]) == 250
    assert dist.verifier.custody_balance == sum(AMOUNTS) - 250
    assert dist.verifier.is_claimed(0, 1)
    assert not dist.verifier.is_claimed(0, 0)
    assert dist.verifier.remaining_amount(0) == sum(AMOUNTS) - 250
    assert dist.events[-1] == ("claimed", {"window_index": 0, "account_index": 1,
                                           "account": ACCOUNTS[1], "amount": 250})

    with pytest.raises(AlreadyClaimed) as exc:
        dist.verifier.claim(0, 250, 1, ACCOUNTS[1], dist.proofs[1])
    assert exc.value.code == "already claimed"
    assert dist.reward_token.balance_of(ACCOUNTS[1]) == 250


def test_every_recipient_can_claim(dist):
    for i in range(len(ACCOUNTS)):
        dist.verifier.claim_many([dist.claim_for(i)])
    assert dist.verifier.custody_balance == 0
    assert dist.verifier.remaining_amount(0) == 0
    assert dist.verifier.claimed.claimed_count(0) == len(ACCOUNTS)


def test_anyone_may_submit_but_account_is_paid(dist):
    # claims carry no caller; payment always goes to the leaf's account
    dist.verifier.claim_many([dist.claim_for(3)])
    assert dist.reward_token.balance_of(ACCOUNTS[3]) == 1000


def test_tampered_claims_rejected(dist):
    with pytest.raises(InvalidProof) as exc:
        dist.verifier.claim_many([dist.claim_for(1, amount=251)])
    assert exc.value.code == "invalid proof"

    with pytest.raises(InvalidProof):
        dist.verifier.claim_many([dist.claim_for(1, account=ACCOUNTS[2])])

    with pytest.raises(InvalidProof):
        dist.verifier.claim_many([dist.claim_for(1, account_index=2)])

    bad_proof = list(dist.proofs[1])
    bad_proof[0] = sha256(b"forged").hex()
    with pytest.raises(InvalidProof):
        dist.verifier.claim_many([dist.claim_for(1, merkle_proof=bad_proof)])

    with pytest.raises(InvalidProof):
        dist.verifier.claim_many([dist.claim_for(1, merkle_proof=["nothex"])])

    with pytest.raises(InvalidProof):
        dist.verifier.claim_many([dist.claim_for(1, account="garbage")])

    assert dist.verifier.custody_balance == sum(AMOUNTS)
    assert not dist.verifier.is_claimed(0, 1)


def test_verify_claim_reads_nothing_but_the_root(dist):
    assert dist.verifier.verify_claim(dist.claim_for(2))
    assert not dist.verifier.verify_claim(dist.claim_for(2, amount=76))
    assert not dist.verifier.verify_claim(dist.claim_for(2, merkle_proof=["zz"]))

    dist.verifier.claim_many([dist.claim_for(2)])
    # consumed claims still carry a valid proof
    assert dist.verifier.verify_claim(dist.claim_for(2))
    with pytest.raises(UnknownWindow):
        dist.verifier.verify_claim(dist.claim_for(2, window_index=9))


def test_proof_for_other_window_rejected(dist):
    claim = dist.claim_for(0)
    dist.publish()
    # window 1 leaves embed window_index 1, so window 0 proofs do not verify there
    with pytest.raises(InvalidProof):
        dist.verifier.claim_many([claim.model_copy(update={"window_index": 1})])


def test_unknown_window(dist):
    with pytest.raises(UnknownWindow) as exc:
        dist.verifier.claim(5, 100, 0, ACCOUNTS[0], dist.proofs[0])
    assert exc.value.code == "unknown window"
    with pytest.raises(UnknownWindow):
        dist.verifier.remaining_amount(5)


def test_underfunded_custody_pays_nothing():
    d = Distribution(funded=50)
    d.publish()

    with pytest.raises(TransferFailed):
        d.verifier.claim_many([d.claim_for(0)])
    assert not d.verifier.is_claimed(0, 0)
    assert d.reward_token.balance_of(ACCOUNTS[0]) == 0
    assert d.verifier.custody_balance == 50

    d.reward_token.mint(CUSTODY, 50)
    assert d.verifier.claim_many([d.claim_for(0)]) == 100


def test_claim_many_is_all_or_nothing(dist):
    good = dist.claim_for(0)
    bad = dist.claim_for(1, amount=1)
    with pytest.raises(InvalidProof):
        dist.verifier.claim_many([good, bad])
    assert not dist.verifier.is_claimed(0, 0)
    assert dist.reward_token.balance_of(ACCOUNTS[0]) == 0

    with pytest.raises(AlreadyClaimed):
        dist.verifier.claim_many([good, good])
    assert not dist.verifier.is_claimed(0, 0)

    with pytest.raises(InvalidOperation):
        dist.verifier.claim_many([])

    assert dist.verifier.claim_many([good, dist.claim_for(1)]) == 350


def test_claims_limited_by_window_allocation():
    d = Distribution()
    d.publish(total=300)

    d.verifier.claim_many([d.claim_for(1)])
    with pytest.raises(InvalidAmount):
        d.verifier.claim_many([d.claim_for(3)])
    assert d.verifier.remaining_amount(0) == 50
    d.verifier.claim_many([d.claim_for(4)])
    assert d.verifier.remaining_amount(0) == 45


def test_fund_and_withdraw_rewards():
    d = Distribution(funded=0)
    funder = module_address("funder")
    d.reward_token.mint(funder, 1000)

    with pytest.raises(TransferFailed):
        d.verifier.fund_rewards(funder, 500)

    d.reward_token.approve(funder, CUSTODY, 500)
    assert d.verifier.fund_rewards(funder, 500) == 500
    with pytest.raises(InvalidAmount):
        d.verifier.fund_rewards(funder, 0)

    with pytest.raises(NotOwner):
        d.verifier.withdraw_rewards(funder, 100)
    with pytest.raises(TransferFailed):
        d.verifier.withdraw_rewards(ADMIN, 501)
    assert d.verifier.withdraw_rewards(ADMIN, 200) == 300
    assert d.reward_token.balance_of(ADMIN) == 200


def test_bitmap_words():
    bitmap = ClaimBitmap()
    bitmap.set_claimed(0, 255)
    bitmap.set_claimed(0, 256)
    bitmap.set_claimed(1, 0)

    assert bitmap.words[0] == {0: 1 << 255, 1: 1}
    assert bitmap.is_claimed(0, 255)
    assert bitmap.is_claimed(0, 256)
    assert not bitmap.is_claimed(0, 0)
    assert bitmap.is_claimed(1, 0)
    assert not bitmap.is_claimed(2, 0)
    assert bitmap.claimed_count(0) == 2
