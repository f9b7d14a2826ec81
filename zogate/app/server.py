from __future__ import annotations

import math
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import web
from aiohttp.abc import AbstractAccessLogger

from zogate.core.errors import GatewayError, InvalidIntegerError, InvalidRequestError
from zogate.core.units import U16_MAX, U64_MAX, U128_MAX
from zogate.execution.models import BookSide, OrderType
from zogate.execution.service import GatewayService
from zogate.utils.logging import get_logger

SERVICE_KEY = web.AppKey("service", GatewayService)

ACCESS_LOG_FORMAT = '%a "%r" %s %b "%{Referer}i" "%{User-Agent}i" %Dms'


class AccessLogger(AbstractAccessLogger):
    """Writes ``ACCESS_LOG_FORMAT`` lines with ``%D`` in milliseconds."""

    def log(self, request: web.BaseRequest, response: web.StreamResponse, time: float) -> None:
        self.logger.info(
            '%s "%s %s HTTP/%d.%d" %d %s "%s" "%s" %.3fms',
            request.remote or "-",
            request.method,
            request.path_qs,
            request.version.major,
            request.version.minor,
            response.status,
            response.body_length,
            request.headers.get("Referer", "-"),
            request.headers.get("User-Agent", "-"),
            time * 1000,
        )


routes = web.RouteTableDef()
logger = get_logger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except GatewayError as exc:
        logger.info(
            "request_failed",
            extra={"status": exc.status, "path": request.path, "error": str(exc)},
        )
        return web.json_response({"error": str(exc)}, status=exc.status)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception("request_failed", extra={"status": 500, "path": request.path, "error": "unhandled"})
        return web.json_response({"error": "Internal server error"}, status=500)


@web.middleware
async def cors_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers.setdefault("Access-Control-Allow-Origin", "*")
        raise
    response.headers.setdefault("Access-Control-Allow-Origin", "*")
    return response


def _service(request: web.Request) -> GatewayService:
    return request.app[SERVICE_KEY]


async def _json_body(request: web.Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as exc:
        raise InvalidRequestError(f"malformed JSON body: {exc}") from exc
    if not isinstance(body, dict):
        raise InvalidRequestError("request body must be a JSON object")
    return body


def _number(body: Dict[str, Any], key: str) -> float:
    if key not in body:
        raise InvalidRequestError(f"missing field {key}")
    value = body[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidRequestError(f"{key} must be a number")
    try:
        value = float(value)
    except OverflowError as exc:
        raise InvalidRequestError(f"{key} is out of range") from exc
    if not math.isfinite(value) or value < 0:
        raise InvalidRequestError(f"{key} must be a finite non-negative number")
    return value


def _flag(body: Dict[str, Any], key: str) -> bool:
    value = body.get(key, False)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise InvalidRequestError(f"{key} must be a boolean")
    return value


def _optional_str(body: Dict[str, Any], key: str) -> Optional[str]:
    value = body.get(key)
    if value is not None and not isinstance(value, str):
        raise InvalidRequestError(f"{key} must be a string")
    return value


def _optional_uint(body: Dict[str, Any], key: str, upper: int) -> Optional[int]:
    value = body.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= upper:
        raise InvalidRequestError(f"{key} must be an integer between 0 and {upper}")
    return value


def _side(value: Any) -> BookSide:
    try:
        return BookSide(value)
    except ValueError as exc:
        raise InvalidRequestError(f"side must be one of bid, ask; got {value!r}") from exc


def _order_type(value: Any) -> OrderType:
    try:
        return OrderType(value)
    except ValueError as exc:
        choices = ", ".join(kind.value for kind in OrderType)
        raise InvalidRequestError(f"orderType must be one of {choices}; got {value!r}") from exc


def _query_uint(request: web.Request, key: str, upper: int) -> Optional[int]:
    raw = request.query.get(key)
    if raw is None:
        return None
    if not (raw.isascii() and raw.isdigit()) or len(raw.lstrip("0")) > len(str(upper)):
        raise InvalidIntegerError(raw)
    value = int(raw)
    if value > upper:
        raise InvalidIntegerError(raw)
    return value


@routes.get("/collateral/balances")
async def collateral_balances(request: web.Request) -> web.Response:
    balances = await _service(request).collateral_balances()
    return web.json_response(balances)


@routes.post("/collateral/deposit/{symbol}")
async def collateral_deposit(request: web.Request) -> web.Response:
    body = await _json_body(request)
    sig = await _service(request).deposit(
        request.match_info["symbol"],
        amount=_number(body, "amount"),
        repay_only=_flag(body, "repayOnly"),
        token_account=_optional_str(body, "tokenAccount"),
    )
    return web.json_response({"sig": sig}, status=201)


@routes.post("/collateral/withdraw/{symbol}")
async def collateral_withdraw(request: web.Request) -> web.Response:
    body = await _json_body(request)
    sig = await _service(request).withdraw(
        request.match_info["symbol"],
        amount=_number(body, "amount"),
        allow_borrow=_flag(body, "allowBorrow"),
        token_account=_optional_str(body, "tokenAccount"),
    )
    return web.json_response({"sig": sig})


@routes.get("/position")
async def position(request: web.Request) -> web.Response:
    positions = await _service(request).positions()
    return web.json_response({symbol: view.to_dict() for symbol, view in positions.items()})


@routes.get("/orders/{symbol}")
async def orders(request: web.Request) -> web.Response:
    views = await _service(request).orders(request.match_info["symbol"])
    return web.json_response([view.to_dict() for view in views])


@routes.post("/orders/{symbol}")
async def orders_post(request: web.Request) -> web.Response:
    body = await _json_body(request)
    for key in ("side", "orderType"):
        if key not in body:
            raise InvalidRequestError(f"missing field {key}")
    sig = await _service(request).place_order(
        request.match_info["symbol"],
        side=_side(body["side"]),
        order_type=_order_type(body["orderType"]),
        price=_number(body, "price"),
        size=_number(body, "size"),
        client_id=_optional_uint(body, "clientId", U64_MAX),
        limit=_optional_uint(body, "limit", U16_MAX),
    )
    return web.json_response({"sig": sig}, status=201)


@routes.delete("/orders/{symbol}")
async def orders_delete(request: web.Request) -> web.Response:
    order_id = _query_uint(request, "order_id", U128_MAX)
    if order_id is None:
        order_id = _query_uint(request, "orderId", U128_MAX)
    side_raw = request.query.get("side")
    client_id = _query_uint(request, "client_id", U64_MAX)
    if client_id is None:
        client_id = _query_uint(request, "clientId", U64_MAX)
    sig = await _service(request).cancel_order(
        request.match_info["symbol"],
        order_id=order_id,
        side=None if side_raw is None else _side(side_raw),
        client_id=client_id,
    )
    return web.json_response({"sig": sig}, status=204)


def create_app(service: GatewayService) -> web.Application:
    app = web.Application(
        middlewares=[
            web.normalize_path_middleware(remove_slash=True, append_slash=False),
            cors_middleware,
            error_middleware,
        ]
    )
    app[SERVICE_KEY] = service
    app.add_routes(routes)
    return app


__all__ = ["SERVICE_KEY", "ACCESS_LOG_FORMAT", "AccessLogger", "create_app", "routes"]
