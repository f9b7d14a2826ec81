from __future__ import annotations

import argparse
from typing import Optional, Sequence

from aiohttp import web
from dotenv import load_dotenv

from zogate.connector.rpc import SolanaRpcClient
from zogate.core.identity import Identity
from zogate.execution.service import GatewayService
from zogate.utils.logging import get_logger, setup_logging
from .config import GatewayConfig, load_config
from .server import ACCESS_LOG_FORMAT, AccessLogger, create_app


async def build_service(cfg: GatewayConfig) -> GatewayService:
    identity = Identity.load(cfg.keypair_path)
    rpc = SolanaRpcClient(cfg.rpc_url, commitment=cfg.commitment, timeout=cfg.rpc_timeout_secs)
    try:
        return await GatewayService.bootstrap(rpc=rpc, identity=identity, ids=cfg.program_ids())
    except BaseException:
        await rpc.close()
        raise


async def build_app(cfg: GatewayConfig) -> web.Application:
    logger = get_logger(__name__)
    service = await build_service(cfg)
    app = create_app(service)

    async def close_rpc(_: web.Application) -> None:
        await service.rpc.close()

    app.on_cleanup.append(close_rpc)
    logger.info(
        "gateway_start",
        extra={"cluster": cfg.cluster, "rpc_url": cfg.rpc_url, "host": cfg.host, "port": cfg.port},
    )
    return app


def run(cfg: GatewayConfig) -> None:
    setup_logging(cfg.log_level, log_dir=cfg.log_dir)
    web.run_app(
        build_app(cfg),
        host=cfg.host,
        port=cfg.port,
        access_log_class=AccessLogger,
        access_log_format=ACCESS_LOG_FORMAT,
        print=None,
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="REST gateway for the 01 perpetual futures program")
    parser.add_argument("--cluster", help="mainnet, devnet, localnet or an RPC URL")
    parser.add_argument("--keypair", help="path to a JSON keypair file used as payer and authority")
    parser.add_argument("--port", type=int)
    parser.add_argument("--config", dest="config_path")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    load_dotenv()
    args = parse_args(argv)
    cfg = load_config(
        cluster=args.cluster,
        keypair=args.keypair,
        port=args.port,
        log_level=args.log_level,
        config_path=args.config_path,
    )
    run(cfg)


if __name__ == "__main__":
    main()
