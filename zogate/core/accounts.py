from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from construct import Construct, ConstructError
from solders.pubkey import Pubkey

from . import layouts
from .errors import CorruptAccountError

ZERO_ADDRESS = Pubkey.default()


@dataclass(frozen=True, slots=True)
class CollateralInfo:
    mint: Pubkey
    oracle_symbol: str
    decimals: int
    weight: int
    is_borrowable: bool
    max_deposit: int


@dataclass(frozen=True, slots=True)
class PerpMarketInfo:
    symbol: str
    oracle_symbol: str
    perp_type: int
    asset_decimals: int
    asset_lot_size: int
    quote_lot_size: int
    dex_market: Pubkey


@dataclass(frozen=True, slots=True)
class GlobalState:
    cache: Pubkey
    vaults: Tuple[Pubkey, ...]
    collaterals: Tuple[CollateralInfo, ...]
    perp_markets: Tuple[PerpMarketInfo, ...]


@dataclass(frozen=True, slots=True)
class MarginAccount:
    authority: Pubkey
    collateral: Tuple[int, ...]
    control: Pubkey


@dataclass(frozen=True, slots=True)
class PositionSlot:
    key: Pubkey
    native_pc_total: int
    pos_size: int
    realized_pnl: int
    coin_on_bids: int
    coin_on_asks: int
    order_count: int
    funding_index: int

    @property
    def is_initialized(self) -> bool:
        return self.key != ZERO_ADDRESS


@dataclass(frozen=True, slots=True)
class ControlAccount:
    authority: Pubkey
    position_slots: Tuple[PositionSlot, ...]


@dataclass(frozen=True, slots=True)
class BorrowCache:
    supply: int
    borrows: int
    supply_multiplier: int
    borrow_multiplier: int
    last_updated: int


@dataclass(frozen=True, slots=True)
class CacheAccount:
    borrow_cache: Tuple[BorrowCache, ...]
    funding_cache: Tuple[int, ...]


@dataclass(frozen=True, slots=True)
class DexMarket:
    own_address: Pubkey
    req_q: Pubkey
    event_q: Pubkey
    bids: Pubkey
    asks: Pubkey
    coin_lot_size: int
    pc_lot_size: int
    fee_rate_bps: int
    coin_decimals: int
    funding_index: int
    open_interest: int


def _pubkey(raw: bytes) -> Pubkey:
    return Pubkey.from_bytes(bytes(raw))


def decode_symbol(raw: bytes, kind: str) -> str:
    """Decode a NUL padded symbol; the all-zero symbol decodes to ``""``."""
    text = bytes(raw).rstrip(b"\x00")
    try:
        return text.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CorruptAccountError(kind, f"symbol is not valid utf-8: {text!r}") from exc


def _parse(layout: Construct, body: bytes, kind: str):
    if len(body) < layout.sizeof():
        raise CorruptAccountError(kind, f"expected at least {layout.sizeof()} bytes, got {len(body)}")
    try:
        return layout.parse(body)
    except ConstructError as exc:
        raise CorruptAccountError(kind, str(exc)) from exc


def _program_account(data: bytes, name: str):
    expected = layouts.account_discriminator(name)
    if len(data) < layouts.DISCRIMINATOR_SIZE:
        raise CorruptAccountError(name, f"only {len(data)} bytes")
    if bytes(data[: layouts.DISCRIMINATOR_SIZE]) != expected:
        raise CorruptAccountError(name, "discriminator mismatch")
    return _parse(layouts.PROGRAM_ACCOUNTS[name], bytes(data[layouts.DISCRIMINATOR_SIZE:]), name)


def decode_state(data: bytes) -> GlobalState:
    raw = _program_account(data, "State")
    collaterals = tuple(
        CollateralInfo(
            mint=_pubkey(c.mint),
            oracle_symbol=decode_symbol(c.oracle_symbol, "State"),
            decimals=c.decimals,
            weight=c.weight,
            is_borrowable=bool(c.is_borrowable),
            max_deposit=c.max_deposit,
        )
        for c in raw.collaterals
    )
    markets = tuple(
        PerpMarketInfo(
            symbol=decode_symbol(m.symbol, "State"),
            oracle_symbol=decode_symbol(m.oracle_symbol, "State"),
            perp_type=m.perp_type,
            asset_decimals=m.asset_decimals,
            asset_lot_size=m.asset_lot_size,
            quote_lot_size=m.quote_lot_size,
            dex_market=_pubkey(m.dex_market),
        )
        for m in raw.perp_markets
    )
    return GlobalState(
        cache=_pubkey(raw.cache),
        vaults=tuple(_pubkey(v) for v in raw.vaults),
        collaterals=collaterals,
        perp_markets=markets,
    )


def decode_margin(data: bytes) -> MarginAccount:
    raw = _program_account(data, "Margin")
    return MarginAccount(
        authority=_pubkey(raw.authority),
        collateral=tuple(raw.collateral),
        control=_pubkey(raw.control),
    )


def decode_control(data: bytes) -> ControlAccount:
    raw = _program_account(data, "Control")
    slots = tuple(
        PositionSlot(
            key=_pubkey(oo.key),
            native_pc_total=oo.native_pc_total,
            pos_size=oo.pos_size,
            realized_pnl=oo.realized_pnl,
            coin_on_bids=oo.coin_on_bids,
            coin_on_asks=oo.coin_on_asks,
            order_count=oo.order_count,
            funding_index=oo.funding_index,
        )
        for oo in raw.open_orders_agg
    )
    return ControlAccount(authority=_pubkey(raw.authority), position_slots=slots)


def decode_cache(data: bytes) -> CacheAccount:
    raw = _program_account(data, "Cache")
    borrow = tuple(
        BorrowCache(
            supply=b.supply,
            borrows=b.borrows,
            supply_multiplier=b.supply_multiplier,
            borrow_multiplier=b.borrow_multiplier,
            last_updated=b.last_updated,
        )
        for b in raw.borrow_cache
    )
    return CacheAccount(borrow_cache=borrow, funding_cache=tuple(raw.funding_cache))


def decode_dex_market(data: bytes) -> DexMarket:
    raw = _parse(layouts.DexMarket, bytes(data), "DexMarket")
    required = layouts.FLAG_INITIALIZED | layouts.FLAG_MARKET
    if raw.account_flags & required != required:
        raise CorruptAccountError("DexMarket", f"unexpected account flags {raw.account_flags:#x}")
    if raw.coin_lot_size == 0 or raw.pc_lot_size == 0:
        raise CorruptAccountError("DexMarket", "zero lot size")
    return DexMarket(
        own_address=_pubkey(raw.own_address),
        req_q=_pubkey(raw.req_q),
        event_q=_pubkey(raw.event_q),
        bids=_pubkey(raw.bids),
        asks=_pubkey(raw.asks),
        coin_lot_size=raw.coin_lot_size,
        pc_lot_size=raw.pc_lot_size,
        fee_rate_bps=raw.fee_rate_bps,
        coin_decimals=raw.coin_decimals,
        funding_index=raw.funding_index,
        open_interest=raw.open_interest,
    )


__all__ = [
    "ZERO_ADDRESS",
    "CollateralInfo",
    "PerpMarketInfo",
    "GlobalState",
    "MarginAccount",
    "PositionSlot",
    "ControlAccount",
    "BorrowCache",
    "CacheAccount",
    "DexMarket",
    "decode_symbol",
    "decode_state",
    "decode_margin",
    "decode_control",
    "decode_cache",
    "decode_dex_market",
]
