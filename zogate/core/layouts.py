"""Binary layouts of the accounts the gateway reads.

Program accounts are Anchor zero-copy structs (packed, little endian) behind an
8 byte discriminator. Dex accounts use the serum framing: a ``b"serum"`` head,
a u64 of account flags, the body, and a ``b"padding"`` tail.
"""

from __future__ import annotations

import hashlib

from construct import (
    Array,
    Bytes,
    BytesInteger,
    Const,
    Flag,
    Int8ul,
    Int16ul,
    Int32ul,
    Int64sl,
    Int64ul,
    Padding,
    Struct,
)

MAX_COLLATERALS = 25
MAX_MARKETS = 50
MAX_ORACLES = 25

DISCRIMINATOR_SIZE = 8

PublicKey = Bytes(32)
Symbol = Bytes(24)
I80F48 = BytesInteger(16, signed=True, swapped=True)
I128 = BytesInteger(16, signed=True, swapped=True)
U128 = BytesInteger(16, signed=False, swapped=True)


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode("utf-8")).digest()[:DISCRIMINATOR_SIZE]


CollateralInfo = Struct(
    "mint" / PublicKey,
    "oracle_symbol" / Symbol,
    "decimals" / Int8ul,
    "weight" / Int16ul,
    "liq_fee" / Int16ul,
    "is_borrowable" / Flag,
    "optimal_util" / Int16ul,
    "optimal_rate" / Int16ul,
    "max_rate" / Int16ul,
    "og_fee" / Int16ul,
    "is_swappable" / Flag,
    "serum_open_orders" / PublicKey,
    "max_deposit" / Int64ul,
    "dust_threshold" / Int16ul,
    Padding(384),
)

PerpMarketInfo = Struct(
    "symbol" / Symbol,
    "oracle_symbol" / Symbol,
    "perp_type" / Int8ul,
    "asset_decimals" / Int8ul,
    "asset_lot_size" / Int64ul,
    "quote_lot_size" / Int64ul,
    "strike" / Int64ul,
    "base_imf" / Int16ul,
    "liq_fee" / Int16ul,
    "dex_market" / PublicKey,
    Padding(320),
)

State = Struct(
    "signer_nonce" / Int8ul,
    "admin" / PublicKey,
    "cache" / PublicKey,
    "swap_fee_vault" / PublicKey,
    "insurance" / Int64ul,
    "fees_accrued" / Array(MAX_COLLATERALS, Int64ul),
    "vaults" / Array(MAX_COLLATERALS, PublicKey),
    "collaterals" / Array(MAX_COLLATERALS, CollateralInfo),
    "perp_markets" / Array(MAX_MARKETS, PerpMarketInfo),
    "total_collaterals" / Int16ul,
    "total_markets" / Int16ul,
    Padding(1280),
)

Margin = Struct(
    "nonce" / Int8ul,
    "authority" / PublicKey,
    "collateral" / Array(MAX_COLLATERALS, I80F48),
    "control" / PublicKey,
    Padding(320),
)

OpenOrdersInfo = Struct(
    "key" / PublicKey,
    "native_pc_total" / Int64sl,
    "pos_size" / Int64sl,
    "realized_pnl" / Int64sl,
    "coin_on_bids" / Int64ul,
    "coin_on_asks" / Int64ul,
    "order_count" / Int8ul,
    "funding_index" / I128,
)

Control = Struct(
    "authority" / PublicKey,
    "open_orders_agg" / Array(MAX_MARKETS, OpenOrdersInfo),
    Padding(1024),
)

OracleSource = Struct(
    "ty" / Int8ul,
    "key" / PublicKey,
)

OracleCache = Struct(
    "symbol" / Symbol,
    "sources_len" / Int8ul,
    "sources" / Array(3, OracleSource),
    "last_updated" / Int64ul,
    "price" / I80F48,
    "twap" / I80F48,
    "base_decimals" / Int8ul,
    "quote_decimals" / Int8ul,
)

TwapInfo = Struct(
    "cumul_avg" / I80F48,
    "open" / I80F48,
    "high" / I80F48,
    "low" / I80F48,
    "close" / I80F48,
    "last_sample_start_time" / Int64ul,
)

MarkCache = Struct(
    "price" / I80F48,
    "twap" / TwapInfo,
)

BorrowCache = Struct(
    "supply" / I80F48,
    "borrows" / I80F48,
    "supply_multiplier" / I80F48,
    "borrow_multiplier" / I80F48,
    "last_updated" / Int64ul,
)

Cache = Struct(
    "oracle_cache" / Array(MAX_ORACLES, OracleCache),
    "mark_cache" / Array(MAX_MARKETS, MarkCache),
    "funding_cache" / Array(MAX_MARKETS, I128),
    "borrow_cache" / Array(MAX_COLLATERALS, BorrowCache),
)

PROGRAM_ACCOUNTS = {
    "State": State,
    "Margin": Margin,
    "Control": Control,
    "Cache": Cache,
}

# Serum account flags.
FLAG_INITIALIZED = 1 << 0
FLAG_MARKET = 1 << 1
FLAG_OPEN_ORDERS = 1 << 2
FLAG_REQUEST_QUEUE = 1 << 3
FLAG_EVENT_QUEUE = 1 << 4
FLAG_BIDS = 1 << 5
FLAG_ASKS = 1 << 6
FLAG_DISABLED = 1 << 7

SERUM_HEAD = b"serum"
SERUM_TAIL = b"padding"

DexMarket = Struct(
    Const(SERUM_HEAD),
    "account_flags" / Int64ul,
    "own_address" / PublicKey,
    "pc_fees_accrued" / Int64ul,
    "req_q" / PublicKey,
    "event_q" / PublicKey,
    "bids" / PublicKey,
    "asks" / PublicKey,
    "coin_lot_size" / Int64ul,
    "pc_lot_size" / Int64ul,
    "fee_rate_bps" / Int64ul,
    "referrer_rebates_accrued" / Int64ul,
    "funding_index" / I128,
    "last_updated" / Int64ul,
    "strike" / Int64ul,
    "perp_type" / Int64ul,
    "coin_decimals" / Int64ul,
    "open_interest" / Int64ul,
    "open_orders_authority" / PublicKey,
    "prune_authority" / PublicKey,
    Padding(1032),
    Const(SERUM_TAIL),
)

SlabPrefix = Struct(
    Const(SERUM_HEAD),
    "account_flags" / Int64ul,
)

SlabHeader = Struct(
    "bump_index" / Int64ul,
    "free_list_len" / Int64ul,
    "free_list_head" / Int32ul,
    "root_node" / Int32ul,
    "leaf_count" / Int64ul,
)

SLAB_NODE_SIZE = 72
SLAB_NODES_OFFSET = SlabPrefix.sizeof() + SlabHeader.sizeof()

NODE_UNINITIALIZED = 0
NODE_INNER = 1
NODE_LEAF = 2
NODE_FREE = 3
NODE_LAST_FREE = 4

InnerNode = Struct(
    "tag" / Int32ul,
    "prefix_len" / Int32ul,
    "key" / U128,
    "children" / Array(2, Int32ul),
    Padding(40),
)

LeafNode = Struct(
    "tag" / Int32ul,
    "owner_slot" / Int8ul,
    "fee_tier" / Int8ul,
    Padding(2),
    "key" / U128,
    "control" / PublicKey,
    "quantity" / Int64ul,
    "client_order_id" / Int64ul,
)

FreeNode = Struct(
    "tag" / Int32ul,
    "next" / Int32ul,
    Padding(64),
)


__all__ = [
    "MAX_COLLATERALS",
    "MAX_MARKETS",
    "MAX_ORACLES",
    "DISCRIMINATOR_SIZE",
    "account_discriminator",
    "PROGRAM_ACCOUNTS",
    "State",
    "Margin",
    "Control",
    "Cache",
    "DexMarket",
    "SlabPrefix",
    "SlabHeader",
    "InnerNode",
    "LeafNode",
    "FreeNode",
    "SLAB_NODE_SIZE",
    "SLAB_NODES_OFFSET",
]
