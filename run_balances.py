import argparse
import asyncio
import logging
import sys

from woo_supply.misc.helper_functions import format_currency, format_number, setup_logging
from woo_supply.misc.pacing import RequestPacer
from woo_supply.recon.balance_recon import BalanceReconciler
from woo_supply.record_store import RecordStore, StoreIOError
from woo_supply.supply_config import load_supply_config

logger = logging.getLogger("balance_trigger")


async def run_update(config, show_metrics=False):
    """Run one reconciliation pass and rewrite the links file."""
    logger.info("🔄 Fetching WOO token balances from all chains...")

    reconciler = BalanceReconciler(config, pacer=RequestPacer(config.request_delay))
    try:
        await reconciler.initialize_async()
        report = await reconciler.run(RecordStore(config.links_path))

        if show_metrics:
            metrics = await reconciler.oracle.fetch_token_metrics()
            if metrics:
                logger.info(
                    f"Total supply {format_number(metrics.total_supply)}, burned {format_number(metrics.burned_amount)}, "
                    f"price {format_currency(metrics.price)}, market cap {format_currency(metrics.market_cap)}, "
                    f"FDV {format_currency(metrics.fdv)}"
                )
            else:
                logger.warning("Token metrics unavailable")
    finally:
        await reconciler.close()

    logger.info(f"✅ Balance update complete! Data saved to {config.links_path}")
    return report


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Update WOO token balances per chain in the links file.")
    parser.add_argument("--links", help="Path to links.json (defaults to LINKS_PATH or data/links.json)")
    parser.add_argument("--no-delay", action="store_true", help="Do not pause between chain RPC calls")
    parser.add_argument("--metrics", action="store_true", help="Also log price, market cap and FDV")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    overrides = {}
    if args.links:
        overrides["links_path"] = args.links
    if args.no_delay:
        overrides["request_delay"] = 0.0
    config = load_supply_config(**overrides)

    try:
        asyncio.run(run_update(config, show_metrics=args.metrics))
    except StoreIOError as e:
        logger.error(f"❌ Record store error: {e}")
        return 1
    except Exception as e:
        logger.error(f"❌ Fatal error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
