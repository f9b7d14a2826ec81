from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from solders.pubkey import Pubkey

from zogate.core.registry import ProgramIds


@dataclass(frozen=True, slots=True)
class ClusterPreset:
    rpc_url: str
    program_id: str
    state_id: str
    dex_program_id: str


MAINNET = ClusterPreset(
    rpc_url="https://api.mainnet-beta.solana.com",
    program_id="Zo1ggzTUKMY5bYnDvT5mtVeZxzf2FaLTbKkmvGUhUQk",
    state_id="71yykwxq1zQqy99PgRsgZJXi2HHK2UDx9G4va7pH6qRv",
    dex_program_id="ZDx8a8jBqGmJyxi1whFxxCo5vG6Q9t4hTzW2GSixMKK",
)

DEVNET = ClusterPreset(
    rpc_url="https://api.devnet.solana.com",
    program_id="Zo1ThtSHMh9tZGECwBDL81WJRL6s3QTHf733Tyko7KQ",
    state_id="KwcWW7WvgSXLJcyjKZJBHLbfriErggzYHpjS9qjVD5F",
    dex_program_id="ZDxUi178LkcuwdxcEqsSo2E7KATH99LAAXN5LcSVMBC",
)

CLUSTERS: Dict[str, ClusterPreset] = {
    "mainnet": MAINNET,
    "mainnet-beta": MAINNET,
    "devnet": DEVNET,
    "localnet": ClusterPreset(
        rpc_url="http://127.0.0.1:8899",
        program_id=DEVNET.program_id,
        state_id=DEVNET.state_id,
        dex_program_id=DEVNET.dex_program_id,
    ),
}


@dataclass(slots=True)
class GatewayConfig:
    cluster: str
    rpc_url: str
    keypair_path: Path
    program_id: str
    state_id: str
    dex_program_id: str
    host: str = "0.0.0.0"
    port: int = 8080
    commitment: str = "finalized"
    rpc_timeout_secs: float = 30.0
    log_level: str = "INFO"
    log_dir: Optional[str] = "logs"

    def program_ids(self) -> ProgramIds:
        try:
            return ProgramIds(
                program_id=Pubkey.from_string(self.program_id),
                state_id=Pubkey.from_string(self.state_id),
                dex_program_id=Pubkey.from_string(self.dex_program_id),
            )
        except ValueError as exc:
            raise ValueError(f"invalid program id in config: {exc}") from exc


def _read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def _read_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def resolve_cluster(cluster: str) -> tuple[str, ClusterPreset]:
    """Accept a cluster moniker or a raw RPC URL (which keeps mainnet program ids)."""
    key = cluster.lower()
    if key in CLUSTERS:
        return key, CLUSTERS[key]
    if key.startswith(("http://", "https://")):
        return cluster, ClusterPreset(
            rpc_url=cluster,
            program_id=MAINNET.program_id,
            state_id=MAINNET.state_id,
            dex_program_id=MAINNET.dex_program_id,
        )
    raise ValueError(f"unsupported cluster: {cluster}")


def load_config(
    *,
    cluster: Optional[str] = None,
    keypair: Optional[str] = None,
    port: Optional[int] = None,
    log_level: str = "INFO",
    config_path: Optional[str] = None,
) -> GatewayConfig:
    payload: Dict[str, Any] = {}
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(config_path)
        if path.suffix in {".yaml", ".yml"}:
            payload = _read_yaml(path)
        elif path.suffix == ".json":
            payload = _read_json(path)
        else:
            raise ValueError(f"unsupported config extension: {path.suffix}")

    cluster_name = payload.get("cluster") or cluster or os.getenv("ZO_CLUSTER")
    if not cluster_name:
        raise ValueError("a cluster is required (--cluster, config 'cluster' or ZO_CLUSTER)")
    keypair_path = payload.get("keypair") or keypair or os.getenv("ZO_KEYPAIR")
    if not keypair_path:
        raise ValueError("a payer keypair is required (--keypair, config 'keypair' or ZO_KEYPAIR)")

    name, preset = resolve_cluster(str(cluster_name))
    programs = payload.get("programs") or {}
    return GatewayConfig(
        cluster=name,
        rpc_url=payload.get("rpc_url") or os.getenv("ZO_RPC_URL") or preset.rpc_url,
        keypair_path=Path(keypair_path).expanduser(),
        program_id=programs.get("program_id") or preset.program_id,
        state_id=programs.get("state_id") or preset.state_id,
        dex_program_id=programs.get("dex_program_id") or preset.dex_program_id,
        host=payload.get("host") or "0.0.0.0",
        port=int(payload.get("port") or port or os.getenv("PORT") or 8080),
        commitment=payload.get("commitment") or "finalized",
        rpc_timeout_secs=float(payload.get("rpc_timeout_secs") or 30.0),
        log_level=(payload.get("log_level") or log_level).upper(),
        log_dir=payload.get("log_dir", "logs"),
    )


__all__ = ["ClusterPreset", "CLUSTERS", "GatewayConfig", "resolve_cluster", "load_config"]
