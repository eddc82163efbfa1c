import os
from types import MappingProxyType
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_serializer, field_validator

USE_DOTENV = os.getenv("USE_DOTENV", "false").lower() == "true"

LOCKED_SUPPLY = 300_000_000  # 300 million WOO locked
MAX_SUPPLY = 3_000_000_000  # 3 billion WOO max supply

WOO_ORACLE_URL = "https://sapi.woo.network/token/total_supply"
COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price?ids=woo-network&vs_currencies=usd&include_market_cap=true&include_24hr_change=true"

chain_config = {
    ## EVM chains
    "Ethereum": {
        "processor": "evm",
        "rpc_url": "https://eth.llamarpc.com",
    },
    "BSC": {
        "processor": "evm",
        "rpc_url": "https://bsc-dataseed1.binance.org",
    },
    "Arbitrum": {
        "processor": "evm",
        "rpc_url": "https://arb1.arbitrum.io/rpc",
    },
    "Polygon": {
        "processor": "evm",
        "rpc_url": "https://polygon-rpc.com",
    },
    "Avalanche": {
        "processor": "evm",
        "rpc_url": "https://api.avax.network/ext/bc/C/rpc",
    },
    "Optimism": {
        "processor": "evm",
        "rpc_url": "https://mainnet.optimism.io",
    },
    "Base": {
        "processor": "evm",
        "rpc_url": "https://mainnet.base.org",
    },
    "Mantle": {
        "processor": "evm",
        "rpc_url": "https://rpc.mantle.xyz",
    },

    # Non-EVM chains
    "Solana": {
        "processor": "solana",
        "rpc_url": "https://api.mainnet-beta.solana.com",
    },
}


class ChainSettings(BaseModel):
    """RPC settings for one tracked network."""
    model_config = ConfigDict(frozen=True)

    processor: str
    rpc_url: str


class SupplyConfig(BaseModel):
    """
    Immutable settings shared by the reconciliation engine and the adapters.
    Use model_copy(update={...}) to derive a variant (e.g. test endpoints).
    """
    model_config = ConfigDict(frozen=True)

    chains: Mapping[str, ChainSettings]
    residual_network: str = "Ethereum"
    recon_category: str = "Explorers"
    locked_supply: float = LOCKED_SUPPLY
    max_supply: float = MAX_SUPPLY
    oracle_url: str = WOO_ORACLE_URL
    price_url: str = COINGECKO_PRICE_URL
    request_delay: float = 0.5
    request_timeout: Optional[float] = None
    links_path: str = os.path.join("data", "links.json")

    @field_validator("chains", mode="after")
    @classmethod
    def _freeze_chains(cls, chains):
        # frozen=True only blocks reassignment of the field
        return MappingProxyType(dict(chains))

    @field_serializer("chains")
    def _dump_chains(self, chains):
        return dict(chains)


def _env_key(chain_name: str) -> str:
    return "RPC_URL_" + chain_name.upper().replace(" ", "_").replace("-", "_")


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or value.strip() == "":
        return None
    return float(value)


def load_supply_config(**overrides) -> SupplyConfig:
    """
    Build the config from the built-in chain table and environment overrides.

    Environment variables:
        RPC_URL_<CHAIN>: replaces the RPC endpoint of a chain (e.g. RPC_URL_ETHEREUM)
        WOO_ORACLE_URL, WOO_PRICE_URL: supply oracle and price endpoints
        REQUEST_DELAY_SECONDS: pause between two chain calls
        REQUEST_TIMEOUT_SECONDS: total HTTP timeout, transport default when unset
        LINKS_PATH: location of the record store
        RESIDUAL_NETWORK: name of the network whose balance is derived
    Keyword overrides win over the environment.
    """
    if USE_DOTENV:
        load_dotenv()

    chains = {}
    for chain_name, settings in chain_config.items():
        rpc_url = os.getenv(_env_key(chain_name)) or settings["rpc_url"]
        chains[chain_name] = ChainSettings(processor=settings["processor"], rpc_url=rpc_url)

    values = {
        "chains": chains,
        "residual_network": os.getenv("RESIDUAL_NETWORK", "Ethereum"),
        "oracle_url": os.getenv("WOO_ORACLE_URL", WOO_ORACLE_URL),
        "price_url": os.getenv("WOO_PRICE_URL", COINGECKO_PRICE_URL),
        "request_delay": float(os.getenv("REQUEST_DELAY_SECONDS", "0.5")),
        "request_timeout": _optional_float(os.getenv("REQUEST_TIMEOUT_SECONDS")),
        "links_path": os.getenv("LINKS_PATH", os.path.join("data", "links.json")),
    }
    values.update(overrides)
    return SupplyConfig(**values)
