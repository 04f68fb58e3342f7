"""
In-process token ledgers.

TokenLedger stands in for the external fungible-token ledgers (deposit
asset, reward asset): balances, allowances, transfer and transfer_from.
ShareToken is the non-transferable reward-share token; only the holder of
its single MintAuthority can mint or burn.
"""
from typing import Dict, Optional
import logging
from .journal import ChangeJournal, allowance_key, balance_key
from ...protocol.types.common import AlreadyInitialized

logger = logging.getLogger(__name__)


class TokenLedger:
    def __init__(self, symbol: str,
                 balances: Dict[str, int] = None,
                 allowances: Dict[str, Dict[str, int]] = None,
                 journal: ChangeJournal = None):
        self.symbol = symbol
        self.journal = journal or ChangeJournal()
        self.balances: Dict[str, int] = balances if balances is not None else {}
        # owner -> spender -> amount
        self.allowances: Dict[str, Dict[str, int]] = allowances if allowances is not None else {}
        self.total_supply = sum(self.balances.values())

    def balance_of(self, address: str) -> int:
        return self.balances.get(address, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances.get(owner, {}).get(spender, 0)

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        if amount < 0:
            return False
        self._set_allowance(owner, spender, amount)
        logger.debug(f"[{self.symbol}] {owner} approved {spender} for {amount}")
        return True

    def mint(self, to: str, amount: int) -> None:
        """Unrestricted issuance, used for genesis allocation and tests."""
        self._credit(to, amount)

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0 or not to or self.balance_of(sender) < amount:
            return False
        self._move(sender, to, amount)
        return True

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        if amount < 0 or not to:
            return False
        if self.balance_of(owner) < amount or self.allowance(owner, spender) < amount:
            return False
        self._set_allowance(owner, spender, self.allowance(owner, spender) - amount)
        self._move(owner, to, amount)
        return True

    def _set_balance(self, address: str, value: int) -> None:
        self.journal.set_item(self.balances, address, value, balance_key(self.symbol, address))

    def _set_allowance(self, owner: str, spender: str, value: int) -> None:
        spenders = self.allowances.get(owner)
        if spenders is None:
            spenders = {}
            self.journal.set_item(self.allowances, owner, spenders)
        self.journal.set_item(spenders, spender, value, allowance_key(self.symbol, owner, spender))

    def _move(self, sender: str, to: str, amount: int) -> None:
        self._set_balance(sender, self.balance_of(sender) - amount)
        self._set_balance(to, self.balance_of(to) + amount)

    def _credit(self, to: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"mint amount must be non-negative, got {amount}")
        if not to:
            raise ValueError("mint to the zero address")
        self._set_balance(to, self.balance_of(to) + amount)
        self.journal.set_attr(self, "total_supply", self.total_supply + amount)

    def _debit(self, frm: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"burn amount must be non-negative, got {amount}")
        if self.balance_of(frm) < amount:
            raise ValueError(f"burn amount exceeds balance: {frm} has {self.balance_of(frm)}, burning {amount}")
        self._set_balance(frm, self.balance_of(frm) - amount)
        self.journal.set_attr(self, "total_supply", self.total_supply - amount)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "balances": {k: v for k, v in self.balances.items() if v},
            "allowances": {
                owner: {s: a for s, a in spenders.items() if a}
                for owner, spenders in self.allowances.items()
                if any(spenders.values())
            },
        }


class MintAuthority:
    """
    Capability to mint and burn a ShareToken.

    Issued exactly once per token; whoever holds it is the only minter.
    """

    def __init__(self, token: 'ShareToken'):
        self._token = token

    @property
    def token(self) -> 'ShareToken':
        return self._token

    def mint(self, to: str, amount: int) -> None:
        self._token._mint_with(self, to, amount)

    def burn(self, frm: str, amount: int) -> None:
        self._token._burn_with(self, frm, amount)


class ShareToken(TokenLedger):
    """Non-transferable share token. Balances only move through mint and burn."""

    def __init__(self, symbol: str, balances: Dict[str, int] = None, journal: ChangeJournal = None):
        super().__init__(symbol, balances=balances, journal=journal)
        self._authority: Optional[MintAuthority] = None

    @property
    def authority_issued(self) -> bool:
        return self._authority is not None

    def issue_authority(self) -> MintAuthority:
        if self._authority is not None:
            raise AlreadyInitialized(f"mint authority for {self.symbol} already issued")
        self.journal.set_attr(self, "_authority", MintAuthority(self))
        logger.info(f"[{self.symbol}] mint authority issued")
        return self._authority

    def approve(self, owner: str, spender: str, amount: int) -> bool:
        return False

    def mint(self, to: str, amount: int) -> None:
        raise PermissionError(f"{self.symbol} can only be minted through its MintAuthority")

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        return False

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        return False

    def _check(self, authority: MintAuthority) -> None:
        if authority is None or authority is not self._authority:
            raise PermissionError(f"caller does not hold the {self.symbol} mint authority")

    def _mint_with(self, authority: MintAuthority, to: str, amount: int) -> None:
        self._check(authority)
        self._credit(to, amount)

    def _burn_with(self, authority: MintAuthority, frm: str, amount: int) -> None:
        self._check(authority)
        self._debit(frm, amount)
