import logging
import math
import time
from typing import Any, Dict, Optional

import aiohttp
from pydantic import BaseModel

from woo_supply.supply_config import SupplyConfig

logger = logging.getLogger("supply_oracle")


class SupplyReading(BaseModel):
    total_supply: float
    circulating_supply: float


class TokenMetrics(BaseModel):
    total_supply: float
    circulating_supply: float
    burned_amount: float
    price: Optional[float] = None
    market_cap: Optional[float] = None
    price_change_24h: Optional[float] = None
    fdv: Optional[float] = None
    last_updated: int


def parse_total_supply(data: Any) -> float:
    """
    Accepts {"total_supply": n}, a bare number, or either as a numeric string.
    Raises ValueError for anything else.
    """
    if isinstance(data, dict):
        if "total_supply" not in data:
            raise ValueError(f"total_supply missing from oracle response: {data}")
        data = data["total_supply"]
    if isinstance(data, bool) or data is None:
        raise ValueError(f"Invalid total_supply value: {data!r}")
    total_supply = float(data)
    if not math.isfinite(total_supply):
        raise ValueError(f"Non-finite total_supply value: {data!r}")
    return total_supply


class SupplyOracleClient:
    """
    Client for the authoritative WOO supply API.

    Circulating supply is total supply minus the locked amount. Failures are
    logged and reported as 0.0, which the reconciliation treats as "unavailable".
    """

    def __init__(self, config: SupplyConfig, http_session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self.http_session = http_session

    async def _get_json(self, url: str) -> Any:
        if not self.http_session:
            raise RuntimeError("HTTP session not initialized")
        async with self.http_session.get(url) as response:
            if response.status != 200:
                raise RuntimeError(f"HTTP {response.status} from {url}")
            return await response.json(content_type=None)

    async def fetch_total_supply(self) -> Optional[float]:
        try:
            data = await self._get_json(self.config.oracle_url)
            return parse_total_supply(data)
        except Exception as e:
            logger.error(f"Failed to fetch total supply: {str(e)}")
            return None

    async def fetch_supply_reading(self) -> Optional[SupplyReading]:
        total_supply = await self.fetch_total_supply()
        if total_supply is None:
            return None
        return SupplyReading(
            total_supply=total_supply,
            circulating_supply=total_supply - self.config.locked_supply,
        )

    async def fetch_circulating_supply(self) -> float:
        reading = await self.fetch_supply_reading()
        if reading is None:
            return 0.0
        if reading.circulating_supply < 0:
            logger.warning(f"Total supply {reading.total_supply:,.0f} is below the locked supply, treating circulating supply as unavailable")
            return 0.0

        logger.info(f"Circulating supply: {reading.circulating_supply:,.0f} WOO (total {reading.total_supply:,.0f})")
        return reading.circulating_supply

    async def fetch_price_data(self) -> Optional[Dict[str, Any]]:
        """Fetch WOO price and market data from CoinGecko."""
        try:
            data = await self._get_json(self.config.price_url)
            price_data = data["woo-network"]
            if "usd" not in price_data:
                raise ValueError("usd price missing")
            return price_data
        except Exception as e:
            logger.error(f"Error fetching price data: {str(e)}")
            return None

    async def fetch_token_metrics(self) -> Optional[TokenMetrics]:
        """Total supply plus price data and the values derived from both."""
        reading = await self.fetch_supply_reading()
        if reading is None:
            return None

        price_data = await self.fetch_price_data() or {}
        price = price_data.get("usd")

        return TokenMetrics(
            total_supply=reading.total_supply,
            circulating_supply=reading.circulating_supply,
            burned_amount=self.config.max_supply - reading.total_supply,
            price=price,
            market_cap=price_data.get("usd_market_cap"),
            price_change_24h=price_data.get("usd_24h_change"),
            fdv=price * self.config.max_supply if price is not None else None,
            last_updated=int(time.time() * 1000),
        )
