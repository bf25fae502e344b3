"""
Rejecting errors raised by the access ledger.

Every error here aborts the single operation that raised it and leaves
no partial state behind. None of them are retried by the core.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all access ledger errors."""


class AssetNotFound(LedgerError, KeyError):
    """The registry has no asset with the given id."""

    def __init__(self, asset_id: int):
        self.asset_id = asset_id
        super().__init__(f"Unknown asset: {asset_id}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])


class InsufficientFunds(LedgerError):
    """Supplied funds do not cover unit_price * amount."""

    def __init__(self, asset_id: int, required: int, provided: int):
        self.asset_id = asset_id
        self.required = required
        self.provided = provided
        super().__init__(
            f"Insufficient funds for asset {asset_id}: required {required}, provided {provided}"
        )


class InsufficientAccessRights(LedgerError):
    """The account holds no unconsumed access credit for the asset."""

    def __init__(self, asset_id: int, account: str):
        self.asset_id = asset_id
        self.account = account
        super().__init__(f"No access credits for {account} on asset {asset_id}")


class Unauthorized(LedgerError):
    """Caller is not the authority for a privileged operation."""

    def __init__(self, caller: str, operation: str):
        self.caller = caller
        self.operation = operation
        super().__init__(f"{caller} is not authorized to {operation}")


class ArithmeticOverflow(LedgerError, OverflowError):
    """A checked integer operation left the configured width."""


class TransferFailed(LedgerError):
    """The payment rail could not forward funds."""


class InvalidAmount(LedgerError, ValueError):
    """An amount or value argument is outside its allowed domain."""


class LedgerCorrupted(LedgerError):
    """The event log contains a line that cannot be replayed."""
