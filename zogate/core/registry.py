from __future__ import annotations

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Mapping, Optional, Sequence, Tuple

from solders.pubkey import Pubkey

from .accounts import DexMarket, GlobalState
from .errors import CollateralNotFoundError, CorruptAccountError, MarketNotFoundError

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
RENT_SYSVAR_ID = Pubkey.from_string("SysvarRent111111111111111111111111111111111")

MARGIN_SEED = b"marginv1"
QUOTE_DECIMALS = 6


@dataclass(frozen=True, slots=True)
class ProgramIds:
    program_id: Pubkey
    state_id: Pubkey
    dex_program_id: Pubkey


def derive_state_signer(program_id: Pubkey, state_id: Pubkey) -> Pubkey:
    address, _ = Pubkey.find_program_address([bytes(state_id)], program_id)
    return address


def derive_margin_address(program_id: Pubkey, state_id: Pubkey, authority: Pubkey) -> Pubkey:
    address, _ = Pubkey.find_program_address(
        [bytes(authority), bytes(state_id), MARGIN_SEED],
        program_id,
    )
    return address


def derive_token_account(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """Associated token account of ``owner`` for ``mint``."""
    address, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


@dataclass(frozen=True, slots=True)
class CollateralDescriptor:
    index: int
    symbol: str
    decimals: int
    mint: Pubkey
    vault: Pubkey


@dataclass(frozen=True, slots=True)
class MarketDescriptor:
    index: int
    symbol: str
    asset_decimals: int
    dex_market: Pubkey
    bids: Pubkey
    asks: Pubkey
    event_q: Pubkey
    req_q: Pubkey
    coin_lot_size: int
    pc_lot_size: int
    coin_decimals: int

    def price_to_lots(self, price: float) -> int:
        numerator = _exact(price, "price") * 10 ** QUOTE_DECIMALS * self.coin_lot_size
        return int(numerator / (10 ** self.coin_decimals * self.pc_lot_size))

    def size_to_lots(self, size: float) -> int:
        return int(_exact(size, "size") * 10 ** self.coin_decimals / self.coin_lot_size)

    def lots_to_price(self, lots: int) -> float:
        return (lots * self.pc_lot_size * 10 ** self.coin_decimals) / (self.coin_lot_size * 10 ** QUOTE_DECIMALS)

    def lots_to_size(self, lots: int) -> float:
        return (lots * self.coin_lot_size) / 10 ** self.coin_decimals


def _exact(value: float, name: str) -> Fraction:
    # lot counts are unbounded here; u64 limits are enforced by the caller
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"{name} must be a finite non-negative number")
    return Fraction(repr(float(value)))


def _active_prefix(symbols: Sequence[str]) -> int:
    for i, symbol in enumerate(symbols):
        if not symbol:
            return i
    return len(symbols)


class SymbolRegistry:
    """Immutable symbol to descriptor table built from the startup snapshot.

    Only the prefix of each state array up to the first nil symbol is active;
    the counts are computed once here and never rescanned.
    """

    def __init__(self, markets: Sequence[MarketDescriptor], collaterals: Sequence[CollateralDescriptor]) -> None:
        self._markets: Tuple[MarketDescriptor, ...] = tuple(markets)
        self._collaterals: Tuple[CollateralDescriptor, ...] = tuple(collaterals)

    @classmethod
    def from_state(cls, state: GlobalState, dex_markets: Mapping[Pubkey, DexMarket]) -> "SymbolRegistry":
        n_collaterals = _active_prefix([c.oracle_symbol for c in state.collaterals])
        n_markets = _active_prefix([m.symbol for m in state.perp_markets])
        collaterals = [
            CollateralDescriptor(
                index=i,
                symbol=info.oracle_symbol,
                decimals=info.decimals,
                mint=info.mint,
                vault=state.vaults[i],
            )
            for i, info in enumerate(state.collaterals[:n_collaterals])
        ]
        markets = []
        for i, info in enumerate(state.perp_markets[:n_markets]):
            dex = dex_markets.get(info.dex_market)
            if dex is None:
                raise CorruptAccountError("DexMarket", f"no dex market loaded for {info.symbol}")
            markets.append(
                MarketDescriptor(
                    index=i,
                    symbol=info.symbol,
                    asset_decimals=info.asset_decimals,
                    dex_market=info.dex_market,
                    bids=dex.bids,
                    asks=dex.asks,
                    event_q=dex.event_q,
                    req_q=dex.req_q,
                    coin_lot_size=dex.coin_lot_size,
                    pc_lot_size=dex.pc_lot_size,
                    coin_decimals=dex.coin_decimals,
                )
            )
        return cls(markets, collaterals)

    @property
    def markets(self) -> Tuple[MarketDescriptor, ...]:
        return self._markets

    @property
    def collaterals(self) -> Tuple[CollateralDescriptor, ...]:
        return self._collaterals

    def find_market(self, symbol: str) -> Optional[MarketDescriptor]:
        for market in self._markets:
            if market.symbol == symbol:
                return market
        return None

    def resolve_market(self, symbol: str) -> MarketDescriptor:
        market = self.find_market(symbol)
        if market is None:
            raise MarketNotFoundError(symbol)
        return market

    def resolve_collateral(self, symbol: str) -> CollateralDescriptor:
        for collateral in self._collaterals:
            if collateral.symbol == symbol:
                return collateral
        raise CollateralNotFoundError(symbol)


__all__ = [
    "TOKEN_PROGRAM_ID",
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "RENT_SYSVAR_ID",
    "MARGIN_SEED",
    "QUOTE_DECIMALS",
    "ProgramIds",
    "derive_state_signer",
    "derive_margin_address",
    "derive_token_account",
    "CollateralDescriptor",
    "MarketDescriptor",
    "SymbolRegistry",
]
