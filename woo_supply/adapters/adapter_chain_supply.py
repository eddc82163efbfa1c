import logging
import math
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Optional

import aiohttp
from web3 import AsyncWeb3, AsyncHTTPProvider, Web3

from woo_supply.supply_config import SupplyConfig

logger = logging.getLogger("chain_supply")

ERC20_ABI = [
    {
        "inputs": [],
        "name": "totalSupply",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "decimals",
        "outputs": [{"internalType": "uint8", "name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class ChainFetchError(Exception):
    """A chain RPC could not deliver a usable token amount."""


def normalize_amount(raw_amount: int, decimals: int) -> float:
    """Convert a raw integer token amount into whole token units."""
    return float(Decimal(raw_amount) / (Decimal(10) ** int(decimals)))


class ChainProcessor(ABC):
    """Abstract base class for one family of chain RPC interfaces."""

    @abstractmethod
    async def initialize_client(self, url: str) -> Any:
        """Initialize the client for this chain family."""
        pass

    @abstractmethod
    async def fetch_supply(self, client: Any, chain_name: str, token_id: str) -> float:
        """Return the token supply on this chain in whole token units, raise ChainFetchError otherwise."""
        pass


class EVMProcessor(ChainProcessor):
    """Processor for account-model (EVM) chains, reads ERC-20 contract state."""

    def __init__(self, request_timeout: Optional[float] = None):
        self.request_timeout = request_timeout

    async def initialize_client(self, url: str) -> AsyncWeb3:
        request_kwargs = {"timeout": aiohttp.ClientTimeout(total=self.request_timeout)} if self.request_timeout else {}
        return AsyncWeb3(AsyncHTTPProvider(url, request_kwargs=request_kwargs))

    def _token_contract(self, w3: AsyncWeb3, token_address: str):
        return w3.eth.contract(address=self._checksum_address(token_address), abi=ERC20_ABI)

    async def fetch_supply(self, w3: AsyncWeb3, chain_name: str, token_address: str) -> float:
        try:
            contract = self._token_contract(w3, token_address)
            total_supply = await contract.functions.totalSupply().call()
            decimals = await contract.functions.decimals().call()
        except Exception as e:
            raise ChainFetchError(f"totalSupply/decimals call failed on {chain_name}: {str(e)}") from e
        return normalize_amount(total_supply, decimals)

    async def fetch_balance(self, w3: AsyncWeb3, chain_name: str, token_address: str, holder: str) -> float:
        try:
            contract = self._token_contract(w3, token_address)
            balance = await contract.functions.balanceOf(self._checksum_address(holder)).call()
            decimals = await contract.functions.decimals().call()
        except Exception as e:
            raise ChainFetchError(f"balanceOf call failed on {chain_name}: {str(e)}") from e
        return normalize_amount(balance, decimals)

    @staticmethod
    def _checksum_address(address: str) -> str:
        return address if Web3.is_checksum_address(address) else Web3.to_checksum_address(address)


class SolanaProcessor(ChainProcessor):
    """Processor for Solana, one getTokenSupply JSON-RPC call over the shared HTTP session."""

    def __init__(self, adapter: 'ChainSupplyAdapter'):
        self.adapter = adapter

    async def initialize_client(self, url: str) -> str:
        """Return the URL as the 'client' for Solana (we'll use the adapter's HTTP session)."""
        return url

    async def fetch_supply(self, url: str, chain_name: str, mint: str) -> float:
        session = self.adapter.http_session
        if session is None:
            raise ChainFetchError("HTTP session not initialized")

        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getTokenSupply",
            "params": [mint]
        }

        try:
            async with session.post(url, json=payload) as response:
                if response.status != 200:
                    raise ChainFetchError(f"HTTP {response.status} from {chain_name} RPC")
                result = await response.json()
        except ChainFetchError:
            raise
        except Exception as e:
            raise ChainFetchError(f"getTokenSupply request to {chain_name} failed: {str(e)}") from e

        if not isinstance(result, dict):
            raise ChainFetchError(f"Invalid response from {chain_name} RPC")
        if "error" in result:
            raise ChainFetchError(f"{chain_name} RPC error: {result['error']}")

        value = (result.get("result") or {}).get("value")
        if not isinstance(value, dict):
            raise ChainFetchError(f"Invalid response from {chain_name} RPC")

        # uiAmount is null when the amount does not fit a float, uiAmountString is always set
        ui_amount = value.get("uiAmount")
        if ui_amount is None:
            ui_amount = value.get("uiAmountString")
        if ui_amount is None:
            raise ChainFetchError(f"No uiAmount in {chain_name} getTokenSupply response")

        try:
            amount = float(ui_amount)
        except (TypeError, ValueError) as e:
            raise ChainFetchError(f"Non-numeric uiAmount from {chain_name}: {ui_amount!r}") from e
        if not math.isfinite(amount):
            raise ChainFetchError(f"Non-finite uiAmount from {chain_name}: {ui_amount!r}")
        return amount


class ChainSupplyAdapter:
    """
    Fetches the token amount held on each tracked network.

    The processor for a network is picked via the 'processor' entry of its chain
    settings. Every failure is logged and degrades to 0.0 so that one unreachable
    chain never aborts a reconciliation run.
    """

    def __init__(self, config: SupplyConfig, http_session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self.http_session = http_session

        self.processors: Dict[str, ChainProcessor] = {
            "evm": EVMProcessor(config.request_timeout),
            "solana": SolanaProcessor(self),
        }

        # clients are created lazily, one per chain
        self.clients: Dict[str, Any] = {}
        self.errors: Dict[str, int] = {}
        self.failed_networks = []

    async def _get_client(self, chain_name: str):
        settings = self.config.chains.get(chain_name)
        if settings is None:
            raise ChainFetchError(f"No chain settings configured for {chain_name}")

        processor = self.processors.get(settings.processor)
        if processor is None:
            raise ChainFetchError(f"No processor found for {settings.processor} (chain: {chain_name})")

        if chain_name not in self.clients:
            self.clients[chain_name] = await processor.initialize_client(settings.rpc_url)
            logger.debug(f"Initialized {settings.processor} client for {chain_name}")
        return processor, self.clients[chain_name]

    def _record_failure(self, chain_name: str, error: Exception) -> None:
        logger.error(f"✗ {chain_name}: {str(error)}")
        self.errors[chain_name] = self.errors.get(chain_name, 0) + 1
        if chain_name not in self.failed_networks:
            self.failed_networks.append(chain_name)

    async def fetch(self, chain_name: str, token_id: str) -> float:
        """Return the token supply on chain_name, 0.0 if it cannot be fetched."""
        try:
            processor, client = await self._get_client(chain_name)
            amount = await processor.fetch_supply(client, chain_name, token_id)
        except Exception as e:
            self._record_failure(chain_name, e)
            return 0.0

        logger.info(f"✓ {chain_name}: {amount:,.2f} WOO")
        return amount

    async def fetch_holder_balance(self, chain_name: str, token_address: str, holder: str) -> float:
        """Return balanceOf(holder) for an EVM token, 0.0 if it cannot be fetched."""
        try:
            processor, client = await self._get_client(chain_name)
            if not isinstance(processor, EVMProcessor):
                raise ChainFetchError(f"balanceOf is not supported on {chain_name}")
            amount = await processor.fetch_balance(client, chain_name, token_address, holder)
        except Exception as e:
            self._record_failure(chain_name, e)
            return 0.0

        logger.info(f"✓ {chain_name}: {holder} holds {amount:,.2f} WOO")
        return amount

    async def close(self) -> None:
        """Disconnect the web3 providers, each holds its own aiohttp session."""
        for chain_name, client in self.clients.items():
            provider = getattr(client, "provider", None)
            if provider is not None and hasattr(provider, "disconnect"):
                await provider.disconnect()
                logger.debug(f"Disconnected client for {chain_name}")
        self.clients.clear()
