"""
Configuration for the agent identity registry.

RegistryConfig carries the administrative parameters (minimum stake,
deactivation cooldown, admin principal) and where the ledger is persisted.
NetworkConfig resolves the stake token for known chains.
"""
import importlib.resources
import json
import logging
import os
from pathlib import Path
from typing import Dict, Any, Optional

import appdirs
from pydantic import BaseModel, Field, field_validator

from .utils import ZERO_ADDRESS, normalize_address

logger = logging.getLogger(__name__)

# 1 USDC (6 decimals)
DEFAULT_MIN_STAKE = 1_000_000
DEFAULT_DEACTIVATION_COOLDOWN = 7 * 24 * 60 * 60

ENV_PREFIX = "AGENT_REGISTRY_"


def default_data_dir() -> Path:
    """Per-user data directory for ledger and event files."""
    return Path(os.environ.get(f"{ENV_PREFIX}DATA_DIR", appdirs.user_data_dir("agent-registry")))


class RegistryConfig(BaseModel):
    """
    Registry parameters.

    Attributes:
        min_stake: Minimum stake required to register, in token base units
        deactivation_cooldown: Seconds between deactivation and stake withdrawal
        admin: Principal allowed to change min_stake and the cooldown
        ledger_path: JSON file for the ledger; None keeps the ledger in memory
        event_log_path: JSON-lines file for events; None keeps events in memory
    """
    min_stake: int = Field(DEFAULT_MIN_STAKE, ge=0)
    deactivation_cooldown: int = Field(DEFAULT_DEACTIVATION_COOLDOWN, ge=0)
    admin: str = ZERO_ADDRESS
    ledger_path: Optional[Path] = None
    event_log_path: Optional[Path] = None

    @field_validator("admin")
    @classmethod
    def _checksum_admin(cls, value: str) -> str:
        return normalize_address(value)

    @classmethod
    def from_env(cls, **overrides: Any) -> "RegistryConfig":
        """
        Build a config from AGENT_REGISTRY_* environment variables.

        Recognised variables: AGENT_REGISTRY_MIN_STAKE,
        AGENT_REGISTRY_COOLDOWN_SECONDS, AGENT_REGISTRY_ADMIN,
        AGENT_REGISTRY_LEDGER_PATH, AGENT_REGISTRY_EVENT_LOG_PATH. Setting
        AGENT_REGISTRY_PERSIST=true without explicit paths stores both files
        under the per-user data directory.

        Keyword overrides win over the environment.
        """
        values: Dict[str, Any] = {}

        min_stake = os.environ.get(f"{ENV_PREFIX}MIN_STAKE")
        if min_stake is not None:
            values["min_stake"] = int(min_stake)

        cooldown = os.environ.get(f"{ENV_PREFIX}COOLDOWN_SECONDS")
        if cooldown is not None:
            values["deactivation_cooldown"] = int(cooldown)

        admin = os.environ.get(f"{ENV_PREFIX}ADMIN")
        if admin:
            values["admin"] = admin

        ledger_path = os.environ.get(f"{ENV_PREFIX}LEDGER_PATH")
        event_log_path = os.environ.get(f"{ENV_PREFIX}EVENT_LOG_PATH")
        if os.environ.get(f"{ENV_PREFIX}PERSIST", "").lower() == "true":
            data_dir = default_data_dir()
            ledger_path = ledger_path or str(data_dir / "ledger.json")
            event_log_path = event_log_path or str(data_dir / "events.jsonl")
        if ledger_path:
            values["ledger_path"] = Path(ledger_path)
        if event_log_path:
            values["event_log_path"] = Path(event_log_path)

        values.update(overrides)
        config = cls(**values)
        logger.debug(
            f"Loaded registry config: min_stake={config.min_stake}, "
            f"cooldown={config.deactivation_cooldown}s, persistent={config.ledger_path is not None}"
        )
        return config


class NetworkConfig:
    """Known networks and the stake token deployed on each"""

    _networks_cache: Optional[Dict[str, Dict[str, Any]]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Dict[str, Any]]:
        """Load networks.json once and cache it on the class."""
        if cls._networks_cache is None:
            resource = importlib.resources.files("agent_registry").joinpath("networks.json")
            with resource.open("r") as f:
                cls._networks_cache = json.load(f)
        return cls._networks_cache

    @classmethod
    def get_network(cls, network: str) -> Dict[str, Any]:
        networks = cls.load_networks()
        if network not in networks:
            available = ", ".join(sorted(networks))
            raise ValueError(f"Unknown network '{network}'. Available networks: {available}")
        return networks[network]

    @classmethod
    def get_rpc_url(cls, network: str, override: Optional[str] = None) -> str:
        if override:
            return override
        return cls.get_network(network)["rpc"]

    @classmethod
    def get_token_address(cls, network: str) -> str:
        return normalize_address(cls.get_network(network)["token"])

    @classmethod
    def get_chain_id(cls, network: str) -> int:
        return int(cls.get_network(network)["chainId"])
