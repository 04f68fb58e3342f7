# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum


class OpType(str, Enum):
    # Lock ledger
    DEPOSIT = "DEPOSIT"
    DEPOSIT_BY_MONTHS = "DEPOSIT_BY_MONTHS"
    WITHDRAW = "WITHDRAW"
    BOOST_TO_MAX = "BOOST_TO_MAX"
    EJECT = "EJECT"             # Admin only

    # Reward distribution
    PUBLISH_WINDOW = "PUBLISH_WINDOW"   # Admin only
    CLAIM = "CLAIM"
    CLAIM_MANY = "CLAIM_MANY"
    FUND_REWARDS = "FUND_REWARDS"
    WITHDRAW_REWARDS = "WITHDRAW_REWARDS"   # Admin only

    # Token allowances for the custody accounts
    APPROVE = "APPROVE"

    # Administration
    SET_CONFIG = "SET_CONFIG"   # Admin only



class ProtocolError(Exception):
    pass


class LedgerError(ProtocolError):
    """
    Base class for every failure an operation can end with.

    `kind` names the failure class, `code` is the short fixed code that
    callers match on.
    """
    kind = "LedgerError"
    code = "ERR"

    def __init__(self, message: str = "", code: str = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"kind": self.kind, "code": self.code, "message": self.message}


class InvalidDuration(LedgerError):
    kind = "InvalidDuration"
    code = "getDividendsMultiplier: Duration not correct"


class InvalidAmount(LedgerError):
    kind = "InvalidAmount"
    code = "amount"


class TransferFailed(LedgerError):
    kind = "TransferFailed"
    code = "STF"


class NotOwner(LedgerError):
    kind = "NotOwner"
    code = "!owner"


class NotExpired(LedgerError):
    kind = "NotExpired"
    code = "lock not expired"


class NotFound(LedgerError):
    kind = "NotFound"
    code = "not found"


class InvalidProof(LedgerError):
    kind = "InvalidProof"
    code = "invalid proof"


class AlreadyClaimed(LedgerError):
    kind = "AlreadyClaimed"
    code = "already claimed"


class UnknownWindow(LedgerError):
    kind = "UnknownWindow"
    code = "unknown window"


class AlreadyInitialized(LedgerError):
    kind = "AlreadyInitialized"
    code = "already initialized"


class InvalidConfig(LedgerError):
    kind = "InvalidConfig"
    code = "min>=max"


class InvalidSignature(LedgerError):
    kind = "InvalidSignature"
    code = "bad signature"


class InvalidNonce(LedgerError):
    kind = "InvalidNonce"
    code = "bad nonce"


class InvalidOperation(LedgerError):
    kind = "InvalidOperation"
    code = "bad op"
