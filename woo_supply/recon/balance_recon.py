import logging
from typing import List, Optional, Tuple

import aiohttp
from pydantic import BaseModel, Field

from woo_supply.adapters.adapter_chain_supply import ChainSupplyAdapter
from woo_supply.adapters.adapter_supply_oracle import SupplyOracleClient
from woo_supply.misc.helper_functions import format_number
from woo_supply.misc.pacing import RequestPacer
from woo_supply.record_store import NetworkRecord, RecordStore
from woo_supply.supply_config import SupplyConfig

logger = logging.getLogger("balance_recon")


class ReconciliationReport(BaseModel):
    """Summary of one reconciliation run."""
    circulating_supply: float
    bridged_total: float = 0.0
    residual_network: str
    residual_balance: Optional[float] = None
    fallback_used: bool = False
    failed_networks: List[str] = Field(default_factory=list)
    eligible_count: int = 0


def _rank_key(record: NetworkRecord):
    balance = record.token_balance
    if balance is None:
        return (2, 0.0)
    if balance == 0:
        return (1, 0.0)
    return (0, -balance)


def rank_records(records: List[NetworkRecord]) -> List[NetworkRecord]:
    """
    Order by tokenBalance descending with zeros and then nulls at the end.
    Ties keep their original relative order.
    """
    return sorted(records, key=_rank_key)


class BalanceReconciler:
    """
    Reconciles per-chain token balances against the circulating supply.

    Every eligible network except the residual one is queried directly; the
    residual network gets circulating supply minus everything bridged away.
    When the supply oracle is unavailable the residual network is queried like
    any other network instead.
    """

    def __init__(self, config: SupplyConfig, chain_adapter=None, oracle=None, pacer: Optional[RequestPacer] = None):
        self.config = config
        self.chain_adapter = chain_adapter or ChainSupplyAdapter(config)
        self.oracle = oracle or SupplyOracleClient(config)
        self.pacer = pacer or RequestPacer(config.request_delay)
        self.http_session: Optional[aiohttp.ClientSession] = None

    async def initialize_async(self):
        """Create the shared HTTP session used by the oracle and non-EVM processors."""
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout) if self.config.request_timeout else None
        self.http_session = aiohttp.ClientSession(timeout=timeout) if timeout else aiohttp.ClientSession()
        if isinstance(self.chain_adapter, ChainSupplyAdapter) and self.chain_adapter.http_session is None:
            self.chain_adapter.http_session = self.http_session
        if isinstance(self.oracle, SupplyOracleClient) and self.oracle.http_session is None:
            self.oracle.http_session = self.http_session

    async def close(self):
        """Clean up resources."""
        if isinstance(self.chain_adapter, ChainSupplyAdapter):
            await self.chain_adapter.close()
        if self.http_session:
            await self.http_session.close()
            self.http_session = None

    def is_eligible(self, record: NetworkRecord) -> bool:
        return record.category == self.config.recon_category and bool(record.contract_address)

    async def reconcile(self, records: List[NetworkRecord]) -> Tuple[List[NetworkRecord], ReconciliationReport]:
        """
        Update the balances of all eligible records and return the full list:
        non-eligible records first in their original order, then the eligible
        records ranked by balance.
        """
        eligible = [record for record in records if self.is_eligible(record)]
        non_eligible = [record for record in records if not self.is_eligible(record)]
        logger.info(f"Fetching WOO token balances for {len(eligible)} networks")

        circulating_supply = await self.oracle.fetch_circulating_supply()
        fallback = circulating_supply <= 0

        residual_name = self.config.residual_network
        residual = next((record for record in eligible if record.name == residual_name), None)
        if residual is None:
            logger.warning(f"Residual network {residual_name} is not among the eligible records, no residual computed")

        targets = [record for record in eligible if record is not residual]
        if fallback and residual is not None:
            logger.warning(f"Circulating supply unavailable, fetching {residual_name} balance directly")
            targets.append(residual)

        bridged_balances = []
        async for record in self.pacer.paced(targets):
            balance = await self.chain_adapter.fetch(record.name, record.contract_address)
            record.token_balance = balance
            if record is not residual:
                bridged_balances.append(balance)

        bridged_total = sum(bridged_balances)
        if residual is not None and not fallback:
            # not clamped, bridged balances can exceed circulating supply on stale data
            residual.token_balance = circulating_supply - bridged_total
            if residual.token_balance < 0:
                logger.warning(f"{residual_name} residual is negative ({residual.token_balance:,.2f}), bridged balances exceed circulating supply")
            logger.info(f"{residual_name} (unbridged): {residual.token_balance:,.2f} WOO")

        report = ReconciliationReport(
            circulating_supply=circulating_supply,
            bridged_total=bridged_total,
            residual_network=residual_name,
            residual_balance=residual.token_balance if residual is not None else None,
            fallback_used=fallback and residual is not None,
            failed_networks=list(getattr(self.chain_adapter, "failed_networks", [])),
            eligible_count=len(eligible),
        )
        return non_eligible + rank_records(eligible), report

    async def run(self, store: RecordStore) -> ReconciliationReport:
        """Load the records, reconcile them and write them back. Store errors propagate."""
        records = store.load()
        updated, report = await self.reconcile(records)
        store.save(updated)

        logger.info(
            f"Balance update complete: circulating={format_number(report.circulating_supply)}, "
            f"bridged={format_number(report.bridged_total)}, "
            f"{report.residual_network}={format_number(report.residual_balance)}"
        )
        if report.failed_networks:
            logger.warning(f"Degraded to zero for: {', '.join(report.failed_networks)}")
        return report
