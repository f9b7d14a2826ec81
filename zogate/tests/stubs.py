from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from zogate.core import layouts
from zogate.core.errors import AccountNotFoundError
from zogate.core.identity import Identity
from zogate.core.registry import ProgramIds, derive_margin_address
from zogate.core.units import I80F48_ONE
from zogate.execution.service import GatewayService


def key(n: int) -> Pubkey:
    """Deterministic test address."""
    return Pubkey.from_bytes(bytes([n]) * 32)


def symbol_bytes(symbol: str) -> bytes:
    return symbol.encode("utf-8").ljust(24, b"\x00")


def fixed(value: float) -> int:
    """Raw I80F48 for values that are exact in binary."""
    return int(value * I80F48_ONE)


class FakeRpc:
    """In-memory ledger: serves account bytes and records submitted transactions."""

    def __init__(self, accounts: Optional[Dict[Pubkey, bytes]] = None) -> None:
        self.accounts: Dict[Pubkey, bytes] = dict(accounts or {})
        self.calls: List[Tuple[str, Optional[Pubkey]]] = []
        self.sent: List[Transaction] = []
        self.closed = False

    async def get_account_data(self, address: Pubkey) -> bytes:
        self.calls.append(("get_account_data", address))
        if address not in self.accounts:
            raise AccountNotFoundError(str(address))
        return self.accounts[address]

    async def get_latest_blockhash(self) -> Hash:
        self.calls.append(("get_latest_blockhash", None))
        return Hash.default()

    async def send_transaction(self, raw: bytes) -> str:
        self.calls.append(("send_transaction", None))
        tx = Transaction.from_bytes(raw)
        self.sent.append(tx)
        return str(tx.signatures[0])

    async def close(self) -> None:
        self.closed = True


# -- program accounts -----------------------------------------------------


def _zeroed(layout):
    return layout.parse(bytes(layout.sizeof()))


def _program_account(name: str, container) -> bytes:
    return layouts.account_discriminator(name) + layouts.PROGRAM_ACCOUNTS[name].build(container)


@dataclass
class CollateralSpec:
    symbol: str
    decimals: int
    mint: Pubkey
    vault: Pubkey


@dataclass
class MarketSpec:
    symbol: str
    asset_decimals: int
    dex_market: Pubkey


def state_bytes(
    *,
    cache: Pubkey,
    collaterals: Sequence[CollateralSpec] = (),
    markets: Sequence[MarketSpec] = (),
) -> bytes:
    state = _zeroed(layouts.State)
    state.cache = bytes(cache)
    for i, spec in enumerate(collaterals):
        info = state.collaterals[i]
        info.mint = bytes(spec.mint)
        info.oracle_symbol = symbol_bytes(spec.symbol)
        info.decimals = spec.decimals
        info.weight = 1000
        state.vaults[i] = bytes(spec.vault)
    for i, spec in enumerate(markets):
        info = state.perp_markets[i]
        info.symbol = symbol_bytes(spec.symbol)
        info.oracle_symbol = symbol_bytes(spec.symbol.split("-")[0] + "/USD")
        info.asset_decimals = spec.asset_decimals
        info.dex_market = bytes(spec.dex_market)
    state.total_collaterals = len(collaterals)
    state.total_markets = len(markets)
    return _program_account("State", state)


def margin_bytes(*, authority: Pubkey, control: Pubkey, collateral: Iterable[int] = ()) -> bytes:
    margin = _zeroed(layouts.Margin)
    margin.authority = bytes(authority)
    margin.control = bytes(control)
    for i, raw in enumerate(collateral):
        margin.collateral[i] = raw
    return _program_account("Margin", margin)


@dataclass
class SlotSpec:
    key: Pubkey
    pos_size: int = 0
    native_pc_total: int = 0
    realized_pnl: int = 0
    funding_index: int = 0


def control_bytes(*, authority: Pubkey, slots: Dict[int, SlotSpec]) -> bytes:
    control = _zeroed(layouts.Control)
    control.authority = bytes(authority)
    for index, spec in slots.items():
        slot = control.open_orders_agg[index]
        slot.key = bytes(spec.key)
        slot.pos_size = spec.pos_size
        slot.native_pc_total = spec.native_pc_total
        slot.realized_pnl = spec.realized_pnl
        slot.funding_index = spec.funding_index
    return _program_account("Control", control)


def cache_bytes(*, multipliers: Dict[int, Tuple[int, int]]) -> bytes:
    """``multipliers`` maps collateral index to raw (supply, borrow) I80F48 multipliers."""
    cache = _zeroed(layouts.Cache)
    for index, (supply, borrow) in multipliers.items():
        entry = cache.borrow_cache[index]
        entry.supply_multiplier = supply
        entry.borrow_multiplier = borrow
    return _program_account("Cache", cache)


# -- dex accounts ----------------------------------------------------------


def _zeroed_serum(layout) -> object:
    size = layout.sizeof()
    blank = layouts.SERUM_HEAD + bytes(size - len(layouts.SERUM_HEAD) - len(layouts.SERUM_TAIL)) + layouts.SERUM_TAIL
    return layout.parse(blank)


def dex_market_bytes(
    *,
    own_address: Pubkey,
    bids: Pubkey,
    asks: Pubkey,
    event_q: Pubkey,
    req_q: Pubkey,
    coin_lot_size: int = 10_000,
    pc_lot_size: int = 10_000,
    coin_decimals: int = 6,
    account_flags: int = layouts.FLAG_INITIALIZED | layouts.FLAG_MARKET,
) -> bytes:
    market = _zeroed_serum(layouts.DexMarket)
    market.account_flags = account_flags
    market.own_address = bytes(own_address)
    market.bids = bytes(bids)
    market.asks = bytes(asks)
    market.event_q = bytes(event_q)
    market.req_q = bytes(req_q)
    market.coin_lot_size = coin_lot_size
    market.pc_lot_size = pc_lot_size
    market.coin_decimals = coin_decimals
    return layouts.DexMarket.build(market)


@dataclass
class RestingOrder:
    price_lots: int
    seq: int
    quantity: int
    client_order_id: int = 0
    owner_slot: int = 0
    control: Pubkey = field(default_factory=Pubkey.default)

    @property
    def order_id(self) -> int:
        return (self.price_lots << 64) | self.seq


class SlabBuilder:
    """Builds slab account bytes holding a valid crit-bit tree."""

    def __init__(self, *, bids: bool, capacity: int = 32) -> None:
        self.flags = layouts.FLAG_INITIALIZED | (layouts.FLAG_BIDS if bids else layouts.FLAG_ASKS)
        self.capacity = capacity
        self.nodes: List[bytes] = []

    def _push(self, node: bytes) -> int:
        self.nodes.append(node)
        return len(self.nodes) - 1

    def _leaf(self, order: RestingOrder) -> int:
        return self._push(
            layouts.LeafNode.build(
                {
                    "tag": layouts.NODE_LEAF,
                    "owner_slot": order.owner_slot,
                    "fee_tier": 0,
                    "key": order.order_id,
                    "control": bytes(order.control),
                    "quantity": order.quantity,
                    "client_order_id": order.client_order_id,
                }
            )
        )

    def _tree(self, orders: List[RestingOrder]) -> int:
        if len(orders) == 1:
            return self._leaf(orders[0])
        keys = [o.order_id for o in orders]
        crit = (min(keys) ^ max(keys)).bit_length() - 1
        low = [o for o in orders if not (o.order_id >> crit) & 1]
        high = [o for o in orders if (o.order_id >> crit) & 1]
        handle = self._push(b"")
        children = [self._tree(low), self._tree(high)]
        self.nodes[handle] = layouts.InnerNode.build(
            {
                "tag": layouts.NODE_INNER,
                "prefix_len": 127 - crit,
                "key": keys[0],
                "children": children,
            }
        )
        return handle

    def build(
        self,
        orders: Sequence[RestingOrder] = (),
        *,
        free_nodes: int = 0,
        leaf_count: Optional[int] = None,
        root: Optional[int] = None,
    ) -> bytes:
        self.nodes = []
        ordered = sorted(orders, key=lambda o: o.order_id)
        tree_root = self._tree(ordered) if ordered else 0
        free_head = len(self.nodes)
        for i in range(free_nodes):
            last = i == free_nodes - 1
            self._push(
                layouts.FreeNode.build(
                    {
                        "tag": layouts.NODE_LAST_FREE if last else layouts.NODE_FREE,
                        "next": 0 if last else free_head + i + 1,
                    }
                )
            )
        header = layouts.SlabHeader.build(
            {
                "bump_index": len(self.nodes),
                "free_list_len": free_nodes,
                "free_list_head": free_head if free_nodes else 0,
                "root_node": tree_root if root is None else root,
                "leaf_count": len(ordered) if leaf_count is None else leaf_count,
            }
        )
        body = b"".join(self.nodes).ljust(self.capacity * layouts.SLAB_NODE_SIZE, b"\x00")
        return (
            layouts.SlabPrefix.build({"account_flags": self.flags})
            + header
            + body
            + layouts.SERUM_TAIL
        )


# -- assembled ledger --------------------------------------------------------

USDC = CollateralSpec(symbol="USDC", decimals=6, mint=key(30), vault=key(31))
SOL = CollateralSpec(symbol="SOL", decimals=9, mint=key(32), vault=key(33))
BTC_PERP = MarketSpec(symbol="BTC-PERP", asset_decimals=6, dex_market=key(40))
ETH_PERP = MarketSpec(symbol="ETH-PERP", asset_decimals=6, dex_market=key(50))

DEFAULT_BIDS = (
    RestingOrder(price_lots=19_000, seq=1, quantity=100, client_order_id=7),
    RestingOrder(price_lots=19_500, seq=2, quantity=200),
)
DEFAULT_ASKS = (
    RestingOrder(price_lots=21_000, seq=3, quantity=50),
    RestingOrder(price_lots=20_500, seq=4, quantity=150, client_order_id=9),
)


@dataclass
class Ledger:
    rpc: FakeRpc
    identity: Identity
    ids: ProgramIds
    margin: Pubkey
    control: Pubkey
    cache: Pubkey
    open_orders: Pubkey
    btc_bids: Pubkey
    btc_asks: Pubkey

    async def service(self) -> GatewayService:
        return await GatewayService.bootstrap(rpc=self.rpc, identity=self.identity, ids=self.ids)

    def put(self, address: Pubkey, data: bytes) -> None:
        self.rpc.accounts[address] = data


def build_ledger(
    *,
    collateral: Sequence[int] = (fixed(1_000_000), fixed(-500_000_000)),
    multipliers: Optional[Dict[int, Tuple[int, int]]] = None,
    bids: Sequence[RestingOrder] = DEFAULT_BIDS,
    asks: Sequence[RestingOrder] = DEFAULT_ASKS,
) -> Ledger:
    """A trader with a USDC/SOL margin account and an open-orders slot on BTC-PERP only."""
    identity = Identity.from_secret(bytes(range(32)))
    ids = ProgramIds(program_id=key(1), state_id=key(2), dex_program_id=key(3))
    cache, control, open_orders = key(10), key(11), key(12)
    margin = derive_margin_address(ids.program_id, ids.state_id, identity.pubkey)

    accounts: Dict[Pubkey, bytes] = {
        ids.state_id: state_bytes(cache=cache, collaterals=[USDC, SOL], markets=[BTC_PERP, ETH_PERP]),
        cache: cache_bytes(
            multipliers=multipliers
            or {0: (I80F48_ONE, I80F48_ONE), 1: (fixed(1.0), fixed(1.5))},
        ),
        margin: margin_bytes(authority=identity.pubkey, control=control, collateral=collateral),
        control: control_bytes(
            authority=identity.pubkey,
            slots={
                0: SlotSpec(
                    key=open_orders,
                    pos_size=-2_500_000,
                    native_pc_total=-50_000_000_000,
                    realized_pnl=1_000_000,
                    funding_index=1_000_000,
                )
            },
        ),
        key(41): SlabBuilder(bids=True).build(bids),
        key(42): SlabBuilder(bids=False).build(asks),
        key(51): SlabBuilder(bids=True).build(),
        key(52): SlabBuilder(bids=False).build(),
    }
    accounts[BTC_PERP.dex_market] = dex_market_bytes(
        own_address=BTC_PERP.dex_market, bids=key(41), asks=key(42), event_q=key(43), req_q=key(44)
    )
    accounts[ETH_PERP.dex_market] = dex_market_bytes(
        own_address=ETH_PERP.dex_market, bids=key(51), asks=key(52), event_q=key(53), req_q=key(54)
    )
    return Ledger(
        rpc=FakeRpc(accounts),
        identity=identity,
        ids=ids,
        margin=margin,
        control=control,
        cache=cache,
        open_orders=open_orders,
        btc_bids=key(41),
        btc_asks=key(42),
    )
