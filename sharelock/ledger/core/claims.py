# MIT License
# Copyright (c) 2025 Hashborn

"""
Claim Verifier

Pays recipients their allotment from a published window.

Flow:
1. Look up the window (UnknownWindow if it was never published)
2. Reject (window, account_index) pairs already paid (AlreadyClaimed)
3. Fold the sorted-pair Merkle proof from the leaf and compare with the
   window root (InvalidProof)
4. Check the window's remaining allocation and the distributor custody
5. Pay out, then mark the pair consumed

Consumption is a bitmap of 256 account indexes per word, per window.
Bits are only ever set.
"""

import logging
from typing import Callable, Dict, List, Set, Tuple

from .accounts import TokenLedger
from .journal import ChangeJournal, claimed_key, paid_key
from .windows import WindowRegistry, parse_hash
from ...protocol.crypto.hash import verify_proof
from ...protocol.types.window import Claim, Window
from ...protocol.types.common import (
    AlreadyClaimed,
    InvalidAmount,
    InvalidOperation,
    InvalidProof,
    NotFound,
    NotOwner,
    TransferFailed,
    UnknownWindow,
)

logger = logging.getLogger(__name__)

BITS_PER_WORD = 256


class ClaimBitmap:
    """(window_index, account_index) -> claimed, packed 256 per word."""

    def __init__(self, words: Dict[int, Dict[int, int]] = None, journal: ChangeJournal = None):
        # window_index -> word_index -> word
        self.words: Dict[int, Dict[int, int]] = words if words is not None else {}
        self.journal = journal or ChangeJournal()

    @staticmethod
    def _position(account_index: int) -> Tuple[int, int]:
        return account_index // BITS_PER_WORD, account_index % BITS_PER_WORD

    def is_claimed(self, window_index: int, account_index: int) -> bool:
        word_index, bit = self._position(account_index)
        word = self.words.get(window_index, {}).get(word_index, 0)
        return bool(word & (1 << bit))

    def set_claimed(self, window_index: int, account_index: int) -> None:
        word_index, bit = self._position(account_index)
        window_words = self.words.get(window_index)
        if window_words is None:
            window_words = {}
            self.journal.set_item(self.words, window_index, window_words)
        self.journal.set_item(window_words, word_index, window_words.get(word_index, 0) | (1 << bit),
                              claimed_key(window_index, word_index))

    def claimed_count(self, window_index: int) -> int:
        return sum(bin(w).count("1") for w in self.words.get(window_index, {}).values())


class ClaimVerifier:
    """
    Args:
        registry: published windows
        reward_token: ledger of the reward asset
        admin: account allowed to withdraw unclaimed rewards
        custody: distributor account paying the claims
        emit: event sink
        journal: change journal recording bitmap and payout changes
    """

    def __init__(self,
                 registry: WindowRegistry,
                 reward_token: TokenLedger,
                 admin: str,
                 custody: str,
                 emit: Callable = None,
                 journal: ChangeJournal = None):
        self.registry = registry
        self.reward_token = reward_token
        self.admin = admin
        self.custody = custody
        self._emit = emit or (lambda event_type, **data: None)

        self.journal = journal or ChangeJournal()

        self.claimed = ClaimBitmap(journal=self.journal)
        # window_index -> amount paid so far
        self.paid: Dict[int, int] = {}

    # --- Reads ---

    def is_claimed(self, window_index: int, account_index: int) -> bool:
        if account_index < 0:
            return False
        return self.claimed.is_claimed(window_index, account_index)

    def remaining_amount(self, window_index: int) -> int:
        window = self._window(window_index)
        return window.total_allocated - self.paid.get(window_index, 0)

    @property
    def custody_balance(self) -> int:
        return self.reward_token.balance_of(self.custody)

    def verify_claim(self, claim: Claim) -> bool:
        """Checks the proof only. No state is read besides the window root."""
        window = self._window(claim.window_index)
        try:
            leaf = claim.leaf().leaf_hash()
            proof = [parse_hash(h) for h in claim.merkle_proof]
        except (ValueError, OverflowError) as e:
            logger.debug(f"Malformed claim for window {claim.window_index}: {e}")
            return False
        return verify_proof(proof, bytes.fromhex(window.merkle_root), leaf)

    # --- Claims ---

    def claim(self, window_index: int, amount: int, account_index: int, account: str,
              merkle_proof: List[str]) -> int:
        """
        Pays `amount` of the reward token to `account`.

        Raises:
            UnknownWindow: window was never published
            AlreadyClaimed: pair already paid
            InvalidProof: proof does not reduce to the window root
            InvalidAmount: amount exceeds the window's remaining allocation
            TransferFailed: distributor custody cannot cover the payout
        """
        claim = Claim(
            window_index=window_index,
            amount=amount,
            account_index=account_index,
            account=account,
            merkle_proof=list(merkle_proof),
        )
        return self.claim_many([claim])

    def claim_many(self, claims: List[Claim]) -> int:
        """
        Pays a batch of claims. Every claim is validated against the state
        left by the ones before it; any failure rejects the whole batch.
        Returns the total paid.
        """
        if not claims:
            raise InvalidOperation("no claims given")

        pending: Set[Tuple[int, int]] = set()
        spent: Dict[int, int] = {}
        total = 0
        for claim in claims:
            self._check_claim(claim, pending, spent)
            pending.add((claim.window_index, claim.account_index))
            spent[claim.window_index] = spent.get(claim.window_index, 0) + claim.amount
            total += claim.amount

        if self.custody_balance < total:
            raise TransferFailed(f"distributor custody holds {self.custody_balance}, {total} required")

        for claim in claims:
            if not self.reward_token.transfer(self.custody, claim.account, claim.amount):
                raise TransferFailed(f"payout to {claim.account} failed")
            self.claimed.set_claimed(claim.window_index, claim.account_index)
            self.journal.set_item(self.paid, claim.window_index, self.paid.get(claim.window_index, 0) + claim.amount,
                                  paid_key(claim.window_index))

            logger.info(
                f"Window {claim.window_index}: paid {claim.amount} to {claim.account} "
                f"(account_index {claim.account_index})"
            )
            self._emit("claimed", window_index=claim.window_index, account_index=claim.account_index,
                       account=claim.account, amount=claim.amount)
        return total

    def _check_claim(self, claim: Claim, pending: Set[Tuple[int, int]], spent: Dict[int, int]) -> None:
        window = self._window(claim.window_index)

        if claim.account_index < 0:
            raise InvalidProof(f"account_index must be non-negative, got {claim.account_index}")
        key = (claim.window_index, claim.account_index)
        if key in pending or self.claimed.is_claimed(*key):
            raise AlreadyClaimed(
                f"account_index {claim.account_index} already claimed window {claim.window_index}"
            )

        if not self.verify_claim(claim):
            raise InvalidProof(
                f"proof for account_index {claim.account_index} does not match window {claim.window_index} root"
            )

        remaining = window.total_allocated - self.paid.get(window.index, 0) - spent.get(window.index, 0)
        if claim.amount > remaining:
            raise InvalidAmount(
                f"claim of {claim.amount} exceeds window {window.index} remaining allocation {remaining}"
            )

    def _window(self, window_index: int) -> Window:
        try:
            return self.registry.window(window_index)
        except NotFound:
            raise UnknownWindow(f"window {window_index} was never published")

    # --- Custody ---

    def fund_rewards(self, caller: str, amount: int) -> int:
        """Pulls reward tokens from `caller` into the distributor custody."""
        if amount <= 0:
            raise InvalidAmount(f"funding amount must be positive, got {amount}")
        if not self.reward_token.transfer_from(self.custody, caller, self.custody, amount):
            raise TransferFailed(f"transfer_from {caller} failed for {amount}")

        logger.info(f"Distributor funded with {amount} by {caller}")
        self._emit("rewards_funded", funder=caller, amount=amount)
        return self.custody_balance

    def withdraw_rewards(self, caller: str, amount: int, to: str = None) -> int:
        """Returns unclaimed reward tokens from custody. Admin only."""
        if caller != self.admin:
            raise NotOwner(f"{caller} is not the ledger admin", code="!admin")
        if amount <= 0:
            raise InvalidAmount(f"withdraw amount must be positive, got {amount}")
        to = to or caller
        if not self.reward_token.transfer(self.custody, to, amount):
            raise TransferFailed(f"distributor custody holds {self.custody_balance}, {amount} requested")

        logger.info(f"Withdrew {amount} unclaimed rewards to {to}")
        self._emit("rewards_withdrawn", to=to, amount=amount)
        return self.custody_balance
