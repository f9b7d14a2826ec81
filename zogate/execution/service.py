from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from solders.pubkey import Pubkey

from ..connector.interface import LedgerRpc
from ..core.accounts import (
    CacheAccount,
    ControlAccount,
    DexMarket,
    GlobalState,
    MarginAccount,
    decode_cache,
    decode_control,
    decode_dex_market,
    decode_margin,
    decode_state,
)
from ..core.errors import InvalidAddressError, OpenOrdersNotFoundError
from ..core.identity import Identity
from ..core.registry import (
    RENT_SYSVAR_ID,
    TOKEN_PROGRAM_ID,
    CollateralDescriptor,
    MarketDescriptor,
    ProgramIds,
    SymbolRegistry,
    derive_margin_address,
    derive_state_signer,
    derive_token_account,
)
from ..core.slab import BookSide, Slab, decode_slab
from ..core.units import big_to_small, div_to_float, i80f48_mul, small_to_big
from ..utils.logging import get_logger
from .builder import TransactionBuilder
from .instructions import (
    CancelOrderAccounts,
    CancelOrderParams,
    DepositAccounts,
    DepositParams,
    Operation,
    PlaceOrderAccounts,
    PlaceOrderParams,
    WithdrawAccounts,
    WithdrawParams,
)
from .models import OrderType, OrderView, PositionView

T = TypeVar("T")

# Quote notional and funding index are kept in USD micro units.
USD_DECIMALS = 6


def parse_address(value: str) -> Pubkey:
    try:
        return Pubkey.from_string(value)
    except ValueError as exc:
        raise InvalidAddressError(value) from exc


async def load_snapshot(rpc: LedgerRpc, ids: ProgramIds) -> Tuple[GlobalState, SymbolRegistry]:
    """Startup read of the global state and every active dex market."""
    state = decode_state(await rpc.get_account_data(ids.state_id))
    dex_markets: Dict[Pubkey, DexMarket] = {}
    for info in state.perp_markets:
        if not info.symbol:
            break
        dex_markets[info.dex_market] = decode_dex_market(await rpc.get_account_data(info.dex_market))
    return state, SymbolRegistry.from_state(state, dex_markets)


class GatewayService:
    """Per-process gateway state shared read-only by all requests.

    Holds the startup snapshot, derived addresses and the signing identity.
    Per-user accounts are fetched fresh for every call; nothing here mutates
    after construction.
    """

    def __init__(
        self,
        *,
        rpc: LedgerRpc,
        identity: Identity,
        ids: ProgramIds,
        state: GlobalState,
        registry: SymbolRegistry,
        builder: Optional[TransactionBuilder] = None,
    ) -> None:
        self.rpc = rpc
        self.identity = identity
        self.ids = ids
        self.state = state
        self.registry = registry
        self.builder = builder or TransactionBuilder(rpc=rpc, identity=identity, program_id=ids.program_id)
        self.state_signer = derive_state_signer(ids.program_id, ids.state_id)
        self.margin_key = derive_margin_address(ids.program_id, ids.state_id, identity.pubkey)
        self._logger = get_logger(__name__)

    @classmethod
    async def bootstrap(cls, *, rpc: LedgerRpc, identity: Identity, ids: ProgramIds) -> "GatewayService":
        state, registry = await load_snapshot(rpc, ids)
        service = cls(rpc=rpc, identity=identity, ids=ids, state=state, registry=registry)
        service._logger.info(
            "snapshot_loaded",
            extra={
                "markets": [m.symbol for m in registry.markets],
                "collaterals": [c.symbol for c in registry.collaterals],
                "authority": str(identity.pubkey),
                "margin": str(service.margin_key),
            },
        )
        return service

    @property
    def authority(self) -> Pubkey:
        return self.identity.pubkey

    async def _fetch(self, address: Pubkey, decoder: Callable[[bytes], T]) -> T:
        data = await self.rpc.get_account_data(address)
        return decoder(data)

    async def fetch_margin(self) -> MarginAccount:
        return await self._fetch(self.margin_key, decode_margin)

    async def fetch_control(self, address: Pubkey) -> ControlAccount:
        return await self._fetch(address, decode_control)

    async def fetch_cache(self) -> CacheAccount:
        return await self._fetch(self.state.cache, decode_cache)

    async def fetch_slab(self, address: Pubkey) -> Slab:
        return await self._fetch(address, decode_slab)

    async def trader_accounts(self) -> Tuple[MarginAccount, ControlAccount]:
        margin = await self.fetch_margin()
        return margin, await self.fetch_control(margin.control)

    @staticmethod
    def open_orders_in(control: ControlAccount, market: MarketDescriptor) -> Pubkey:
        slot = control.position_slots[market.index]
        if not slot.is_initialized:
            raise OpenOrdersNotFoundError(market.symbol)
        return slot.key

    async def open_orders(self, symbol: str) -> Pubkey:
        market = self.registry.resolve_market(symbol)
        _, control = await self.trader_accounts()
        return self.open_orders_in(control, market)

    def token_account(self, collateral: CollateralDescriptor, explicit: Optional[str]) -> Pubkey:
        if explicit is not None:
            return parse_address(explicit)
        return derive_token_account(self.authority, collateral.mint)

    # -- read path -------------------------------------------------------

    async def collateral_balances(self) -> Dict[str, float]:
        cache, margin = await asyncio.gather(self.fetch_cache(), self.fetch_margin())
        balances: Dict[str, float] = {}
        for collateral in self.registry.collaterals:
            raw = margin.collateral[collateral.index]
            borrow = cache.borrow_cache[collateral.index]
            multiplier = borrow.supply_multiplier if raw >= 0 else borrow.borrow_multiplier
            balances[collateral.symbol] = small_to_big(i80f48_mul(raw, multiplier), collateral.decimals)
        return balances

    async def positions(self) -> Dict[str, PositionView]:
        _, control = await self.trader_accounts()
        views: Dict[str, PositionView] = {}
        for market in self.registry.markets:
            slot = control.position_slots[market.index]
            if not slot.is_initialized:
                views[market.symbol] = PositionView.uninitialized()
                continue
            views[market.symbol] = PositionView(
                size=abs(div_to_float(slot.pos_size, market.asset_decimals)),
                value=abs(div_to_float(slot.native_pc_total, USD_DECIMALS)),
                realized_pnl=div_to_float(slot.realized_pnl, market.asset_decimals),
                funding_index=div_to_float(slot.funding_index, USD_DECIMALS),
                is_long=slot.pos_size >= 0,
            )
        return views

    async def orders(self, symbol: str) -> List[OrderView]:
        market = self.registry.resolve_market(symbol)
        bids, asks = await asyncio.gather(self.fetch_slab(market.bids), self.fetch_slab(market.asks))
        views: List[OrderView] = []
        for slab, side in ((bids, BookSide.BID), (asks, BookSide.ASK)):
            for order in slab.iter_front():
                views.append(
                    OrderView(
                        owner_slot=order.owner_slot,
                        fee_tier=order.fee_tier,
                        control=str(order.control),
                        order_id=order.order_id,
                        client_order_id=order.client_order_id,
                        size=market.lots_to_size(order.quantity),
                        price=market.lots_to_price(order.price_lots),
                        side=side,
                    )
                )
        return views

    # -- write path ------------------------------------------------------

    async def deposit(
        self,
        symbol: str,
        *,
        amount: float,
        repay_only: bool = False,
        token_account: Optional[str] = None,
    ) -> str:
        collateral = self.registry.resolve_collateral(symbol)
        source = self.token_account(collateral, token_account)
        params = DepositParams(amount=big_to_small(amount, collateral.decimals), repay_only=repay_only)
        accounts = DepositAccounts(
            state=self.ids.state_id,
            state_signer=self.state_signer,
            cache=self.state.cache,
            authority=self.authority,
            margin=self.margin_key,
            token_account=source,
            vault=collateral.vault,
            token_program=TOKEN_PROGRAM_ID,
        )
        return await self.builder.build_and_submit(Operation.DEPOSIT, params, accounts)

    async def withdraw(
        self,
        symbol: str,
        *,
        amount: float,
        allow_borrow: bool = False,
        token_account: Optional[str] = None,
    ) -> str:
        collateral = self.registry.resolve_collateral(symbol)
        destination = self.token_account(collateral, token_account)
        params = WithdrawParams(amount=big_to_small(amount, collateral.decimals), allow_borrow=allow_borrow)
        # the control address is only known once the margin account is read
        margin = await self.fetch_margin()
        accounts = WithdrawAccounts(
            state=self.ids.state_id,
            state_signer=self.state_signer,
            cache=self.state.cache,
            authority=self.authority,
            margin=self.margin_key,
            control=margin.control,
            token_account=destination,
            vault=collateral.vault,
            token_program=TOKEN_PROGRAM_ID,
        )
        return await self.builder.build_and_submit(Operation.WITHDRAW, params, accounts)

    async def place_order(
        self,
        symbol: str,
        *,
        side: BookSide,
        order_type: OrderType,
        price: float,
        size: float,
        client_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> str:
        market = self.registry.resolve_market(symbol)
        params = PlaceOrderParams.for_market(
            market,
            side=side,
            order_type=order_type,
            price=price,
            size=size,
            client_id=client_id,
            limit=limit,
        )
        margin, control = await self.trader_accounts()
        open_orders = self.open_orders_in(control, market)
        accounts = PlaceOrderAccounts(
            state=self.ids.state_id,
            state_signer=self.state_signer,
            cache=self.state.cache,
            authority=self.authority,
            margin=self.margin_key,
            control=margin.control,
            open_orders=open_orders,
            dex_market=market.dex_market,
            req_q=market.req_q,
            event_q=market.event_q,
            market_bids=market.bids,
            market_asks=market.asks,
            dex_program=self.ids.dex_program_id,
            rent=RENT_SYSVAR_ID,
        )
        return await self.builder.build_and_submit(Operation.PLACE_PERP_ORDER, params, accounts)

    async def cancel_order(
        self,
        symbol: str,
        *,
        order_id: Optional[int] = None,
        side: Optional[BookSide] = None,
        client_id: Optional[int] = None,
    ) -> str:
        market = self.registry.resolve_market(symbol)
        params = CancelOrderParams(
            order_id=order_id,
            is_long=None if side is None else side is BookSide.BID,
            client_id=client_id,
        )
        margin, control = await self.trader_accounts()
        open_orders = self.open_orders_in(control, market)
        accounts = CancelOrderAccounts(
            state=self.ids.state_id,
            cache=self.state.cache,
            authority=self.authority,
            margin=self.margin_key,
            control=margin.control,
            open_orders=open_orders,
            dex_market=market.dex_market,
            event_q=market.event_q,
            market_bids=market.bids,
            market_asks=market.asks,
            dex_program=self.ids.dex_program_id,
        )
        return await self.builder.build_and_submit(Operation.CANCEL_PERP_ORDER, params, accounts)


__all__ = ["USD_DECIMALS", "parse_address", "load_snapshot", "GatewayService"]
