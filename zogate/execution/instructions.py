"""Instruction payloads and account lists for the four mutating operations.

Instruction data is the Anchor sighash of the instruction name followed by
the borsh encoded arguments. Account order matters: the program reads
accounts positionally, so each ``*Accounts`` dataclass lists its fields in the
exact order they are passed.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, fields
from enum import Enum
from typing import List, Optional

from borsh_construct import U8, U16, U64, U128, Bool, CStruct, Option
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from ..core.errors import QuantityOverflowError
from ..core.registry import MarketDescriptor
from ..core.units import U16_MAX, U64_MAX, U128_MAX
from .models import BookSide, OrderType

DEFAULT_MATCH_LIMIT = 20


def sighash(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode("utf-8")).digest()[:8]


class Operation(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    PLACE_PERP_ORDER = "place_perp_order"
    CANCEL_PERP_ORDER = "cancel_perp_order"


DepositArgs = CStruct("repay_only" / Bool, "amount" / U64)
WithdrawArgs = CStruct("allow_borrow" / Bool, "amount" / U64)
PlacePerpOrderArgs = CStruct(
    "is_long" / Bool,
    "limit_price" / U64,
    "max_base_quantity" / U64,
    "max_quote_quantity" / U64,
    "order_type" / U8,
    "limit" / U16,
    "client_id" / U64,
)
CancelPerpOrderArgs = CStruct(
    "order_id" / Option(U128),
    "is_long" / Option(Bool),
    "client_id" / Option(U64),
)


def _meta(pubkey: Pubkey, *, writable: bool = False, signer: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=writable)


class _Accounts:
    """Mixin turning dataclass fields into ordered account metas."""

    WRITABLE: frozenset = frozenset()
    SIGNERS: frozenset = frozenset({"authority"})

    def to_account_metas(self) -> List[AccountMeta]:
        return [
            _meta(
                getattr(self, f.name),
                writable=f.name in self.WRITABLE,
                signer=f.name in self.SIGNERS,
            )
            for f in fields(self)
        ]


@dataclass(frozen=True, slots=True)
class DepositParams:
    amount: int
    repay_only: bool = False


@dataclass(frozen=True, slots=True)
class DepositAccounts(_Accounts):
    state: Pubkey
    state_signer: Pubkey
    cache: Pubkey
    authority: Pubkey
    margin: Pubkey
    token_account: Pubkey
    vault: Pubkey
    token_program: Pubkey

    WRITABLE = frozenset({"state_signer", "cache", "margin", "token_account", "vault"})


@dataclass(frozen=True, slots=True)
class WithdrawParams:
    amount: int
    allow_borrow: bool = False


@dataclass(frozen=True, slots=True)
class WithdrawAccounts(_Accounts):
    state: Pubkey
    state_signer: Pubkey
    cache: Pubkey
    authority: Pubkey
    margin: Pubkey
    control: Pubkey
    token_account: Pubkey
    vault: Pubkey
    token_program: Pubkey

    WRITABLE = frozenset({"state_signer", "cache", "margin", "control", "token_account", "vault"})


@dataclass(frozen=True, slots=True)
class PlaceOrderParams:
    is_long: bool
    limit_price: int
    max_base_quantity: int
    max_quote_quantity: int
    order_type: OrderType
    limit: int = DEFAULT_MATCH_LIMIT
    client_id: int = 0

    @classmethod
    def for_market(
        cls,
        market: MarketDescriptor,
        *,
        side: BookSide,
        order_type: OrderType,
        price: float,
        size: float,
        client_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> "PlaceOrderParams":
        """Convert human price/size into lots and bound the quote quantity."""
        limit_price = market.price_to_lots(price)
        max_base_quantity = market.size_to_lots(size)
        max_quote_quantity = limit_price * max_base_quantity * market.pc_lot_size
        for name, value in (
            ("limit_price", limit_price),
            ("max_base_quantity", max_base_quantity),
            ("max_quote_quantity", max_quote_quantity),
        ):
            if value > U64_MAX:
                raise QuantityOverflowError(name, value)
        return cls(
            is_long=side is BookSide.BID,
            limit_price=limit_price,
            max_base_quantity=max_base_quantity,
            max_quote_quantity=max_quote_quantity,
            order_type=order_type,
            limit=DEFAULT_MATCH_LIMIT if limit is None else limit,
            client_id=0 if client_id is None else client_id,
        )


@dataclass(frozen=True, slots=True)
class PlaceOrderAccounts(_Accounts):
    state: Pubkey
    state_signer: Pubkey
    cache: Pubkey
    authority: Pubkey
    margin: Pubkey
    control: Pubkey
    open_orders: Pubkey
    dex_market: Pubkey
    req_q: Pubkey
    event_q: Pubkey
    market_bids: Pubkey
    market_asks: Pubkey
    dex_program: Pubkey
    rent: Pubkey

    WRITABLE = frozenset(
        {
            "state_signer",
            "cache",
            "margin",
            "control",
            "open_orders",
            "dex_market",
            "req_q",
            "event_q",
            "market_bids",
            "market_asks",
        }
    )


@dataclass(frozen=True, slots=True)
class CancelOrderParams:
    """Cancellation filters; ``None`` means the field does not constrain the match."""

    order_id: Optional[int] = None
    is_long: Optional[bool] = None
    client_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class CancelOrderAccounts(_Accounts):
    state: Pubkey
    cache: Pubkey
    authority: Pubkey
    margin: Pubkey
    control: Pubkey
    open_orders: Pubkey
    dex_market: Pubkey
    event_q: Pubkey
    market_bids: Pubkey
    market_asks: Pubkey
    dex_program: Pubkey

    WRITABLE = frozenset(
        {"cache", "margin", "control", "open_orders", "dex_market", "event_q", "market_bids", "market_asks"}
    )


def _check_range(name: str, value: Optional[int], upper: int) -> None:
    if value is not None and not 0 <= value <= upper:
        raise QuantityOverflowError(name, value)


def deposit_instruction(program_id: Pubkey, params: DepositParams, accounts: DepositAccounts) -> Instruction:
    _check_range("amount", params.amount, U64_MAX)
    data = sighash(Operation.DEPOSIT.value) + DepositArgs.build(
        {"repay_only": params.repay_only, "amount": params.amount}
    )
    return Instruction(program_id, data, accounts.to_account_metas())


def withdraw_instruction(program_id: Pubkey, params: WithdrawParams, accounts: WithdrawAccounts) -> Instruction:
    _check_range("amount", params.amount, U64_MAX)
    data = sighash(Operation.WITHDRAW.value) + WithdrawArgs.build(
        {"allow_borrow": params.allow_borrow, "amount": params.amount}
    )
    return Instruction(program_id, data, accounts.to_account_metas())


def place_order_instruction(
    program_id: Pubkey, params: PlaceOrderParams, accounts: PlaceOrderAccounts
) -> Instruction:
    _check_range("limit", params.limit, U16_MAX)
    _check_range("client_id", params.client_id, U64_MAX)
    data = sighash(Operation.PLACE_PERP_ORDER.value) + PlacePerpOrderArgs.build(
        {
            "is_long": params.is_long,
            "limit_price": params.limit_price,
            "max_base_quantity": params.max_base_quantity,
            "max_quote_quantity": params.max_quote_quantity,
            "order_type": params.order_type.code,
            "limit": params.limit,
            "client_id": params.client_id,
        }
    )
    return Instruction(program_id, data, accounts.to_account_metas())


def cancel_order_instruction(
    program_id: Pubkey, params: CancelOrderParams, accounts: CancelOrderAccounts
) -> Instruction:
    _check_range("order_id", params.order_id, U128_MAX)
    _check_range("client_id", params.client_id, U64_MAX)
    data = sighash(Operation.CANCEL_PERP_ORDER.value) + CancelPerpOrderArgs.build(
        {
            "order_id": params.order_id,
            "is_long": params.is_long,
            "client_id": params.client_id,
        }
    )
    return Instruction(program_id, data, accounts.to_account_metas())


__all__ = [
    "DEFAULT_MATCH_LIMIT",
    "sighash",
    "Operation",
    "DepositParams",
    "DepositAccounts",
    "WithdrawParams",
    "WithdrawAccounts",
    "PlaceOrderParams",
    "PlaceOrderAccounts",
    "CancelOrderParams",
    "CancelOrderAccounts",
    "deposit_instruction",
    "withdraw_instruction",
    "place_order_instruction",
    "cancel_order_instruction",
]
