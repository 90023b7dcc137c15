"""
transfer.py - Value Transfer Variants for Vesting Pools

A vesting pool is a wallet on a Ledger. Paying out of it is a ledger
transaction from the pool wallet to the recipient. Two variants exist and
differ only in how value moves:

1. CoinTransfer - native coin. The recipient may have a receive hook (the
   analogue of a payable fallback) that runs after the credit and may call
   back into the engine. If the hook raises, the ledger is restored to its
   state before the payout, undoing whatever the hook moved as well.
2. TokenTransfer - fungible token. A plain balance move, no callbacks.

Both implement the ValueTransfer protocol: send() either completes or raises
TransferFailed having moved nothing; pool_balance() reports pool holdings.

Pattern:
    Release of 10 units to "alice" from pool "coin_vesting":
        Move(source="coin_vesting", dest="alice", unit="ETH", quantity=10,
             contract_id="coin_vesting:payout:1")
"""

from __future__ import annotations
from decimal import Decimal
from typing import Callable, Dict, Optional

from .core import (
    Move, TransactionOrigin, OriginType, ExecuteResult,
    UNIT_TYPE_NATIVE, UNIT_TYPE_TOKEN,
    TransferFailed, WalletNotRegistered,
    build_transaction,
)
from .ledger import Ledger


# Called as hook(sender_wallet, amount) after a native-coin credit.
ReceiveHook = Callable[[str, int], None]


class LedgerValueTransfer:
    """
    Pays out of a pool wallet held on a Ledger.

    Every payout carries a per-transfer nonce in its contract_id, so two
    payouts with identical amount and recipient are distinct intents and are
    never collapsed by the ledger's idempotency check.
    """

    unit_type: Optional[str] = None

    def __init__(self, ledger: Ledger, pool_wallet: str, unit_symbol: str):
        unit = ledger.get_unit(unit_symbol)
        if self.unit_type is not None and unit.unit_type != self.unit_type:
            raise ValueError(
                f"{type(self).__name__} requires a {self.unit_type} unit, "
                f"{unit_symbol} is {unit.unit_type}"
            )
        if not ledger.is_registered(pool_wallet):
            raise WalletNotRegistered(f"Wallet {pool_wallet} not registered")
        self.ledger = ledger
        self.pool_wallet = pool_wallet
        self.unit_symbol = unit_symbol
        self._nonce = 0

    def pool_balance(self) -> int:
        return int(self.ledger.get_balance(self.pool_wallet, self.unit_symbol))

    def send(self, recipient: str, amount: int) -> None:
        """
        Move `amount` base units from the pool to `recipient`.

        Raises:
            TransferFailed: If the ledger does not apply the move
        """
        if amount <= 0:
            raise TransferFailed(f"Transfer amount must be positive, got {amount}")
        if not self.ledger.is_registered(recipient):
            raise TransferFailed(f"Recipient {recipient} not registered")

        self._nonce += 1
        move = Move(
            quantity=Decimal(amount),
            unit_symbol=self.unit_symbol,
            source=self.pool_wallet,
            dest=recipient,
            contract_id=f"{self.pool_wallet}:payout:{self._nonce}",
        )
        origin = TransactionOrigin(
            origin_type=OriginType.CONTRACT,
            source_id=self.pool_wallet,
            unit_symbol=self.unit_symbol,
            event_type="PAYOUT",
        )
        result = self.ledger.execute(build_transaction(self.ledger, [move], origin))
        if result != ExecuteResult.APPLIED:
            raise TransferFailed(
                f"Transfer of {amount} {self.unit_symbol} to {recipient} {result.value}"
            )


class CoinTransfer(LedgerValueTransfer):
    """
    Native-coin payouts with recipient receive hooks.

    A hook runs after the credit and sees it. If it raises, the ledger goes
    back to its savepoint from before the payout, so the credit and every
    move the hook made are undone together.

    Example:
        transfer = CoinTransfer(ledger, "coin_vesting", "ETH")
        transfer.register_receive_hook("alice", lambda sender, amount: ...)
    """

    unit_type = UNIT_TYPE_NATIVE

    def __init__(self, ledger: Ledger, pool_wallet: str, unit_symbol: str):
        super().__init__(ledger, pool_wallet, unit_symbol)
        self.receive_hooks: Dict[str, ReceiveHook] = {}

    def register_receive_hook(self, wallet: str, hook: ReceiveHook) -> None:
        self.receive_hooks[wallet] = hook

    def send(self, recipient: str, amount: int) -> None:
        hook = self.receive_hooks.get(recipient)
        if hook is None:
            super().send(recipient, amount)
            return
        savepoint = self.ledger.savepoint()
        super().send(recipient, amount)
        try:
            hook(self.pool_wallet, amount)
        except Exception as exc:
            self.ledger.restore(savepoint)
            raise TransferFailed(f"Receive hook of {recipient} failed: {exc}") from exc


class TokenTransfer(LedgerValueTransfer):
    """Fungible-token payouts; a plain balance move."""

    unit_type = UNIT_TYPE_TOKEN
