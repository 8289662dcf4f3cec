#!/usr/bin/env python3
"""Collateral Oracle.

Values fractionalized domain tokens from discovery, detail and pool data,
and publishes the valuations to the on-chain rank oracle. A second pipeline
publishes fungible-token prices from CoinGecko through the same signer.

Configure with CLI flags or environment variables (CLI args take precedence).
"""

import argparse
import asyncio
import logging
import os
import sys

from .src.AssetRecord import is_valid_address
from .src.Broadcaster import Broadcaster
from .src.clients import CoinGeckoClient, DetailClient, DiscoveryClient
from .src.Collector import Collector
from .src.ContractUtility import NETWORKS, ContractUtility
from .src.CryptoPriceSource import CryptoPriceSource
from .src.Orchestrator import OracleOrchestrator
from .src.PoolPriceReader import PoolPriceReader
from .src.ScoringEngine import ScoringEngine
from .src.Signer import LocalAccountSigner

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

DEFAULT_SUBGRAPH_URL = "https://api-testnet.doma.xyz/graphql"


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser with environment-variable defaults."""
    parser = argparse.ArgumentParser(
        description="Collateral Oracle: fractional domain token valuations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run both pipelines on their schedules
  ORACLE_UPDATER_PRIVATE_KEY=0x... python -m collateral_oracle.main \\
      --oracle-address 0x...

  # Single domain cycle, no crypto pipeline
  python -m collateral_oracle.main --oracle-address 0x... --once --no-crypto

Environment variables (CLI args take precedence):
  NETWORK, RPC_URL, DOMA_SUBGRAPH_URL, DOMA_API_KEY, DOMA_RANK_ORACLE_ADDRESS,
  ORACLE_UPDATER_PRIVATE_KEY (env only), UPDATE_INTERVAL_MS,
  CRYPTO_UPDATE_INTERVAL_MS, MAX_TOKENS_PER_RUN, DELAY_BETWEEN_UPDATES_MS,
  MIN_PRICE_CHANGE_PERCENT, CRYPTO_API_URL, CRYPTO_API_KEY,
  CONFIRMATION_TIMEOUT, FETCH_TIMEOUT
""",
    )

    parser.add_argument(
        "--network",
        type=str,
        help=f"Network to connect to ({', '.join(NETWORKS)})",
        default=os.environ.get("NETWORK") or "doma-testnet",
    )

    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="JSON-RPC endpoint (default: the network's endpoint)",
        default=os.environ.get("RPC_URL"),
    )

    parser.add_argument(
        "--subgraph-url",
        dest="subgraph_url",
        type=str,
        help=f"Discovery GraphQL endpoint (default: {DEFAULT_SUBGRAPH_URL})",
        default=os.environ.get("DOMA_SUBGRAPH_URL") or DEFAULT_SUBGRAPH_URL,
    )

    parser.add_argument(
        "--subgraph-api-key",
        dest="subgraph_api_key",
        type=str,
        help="API key for the discovery endpoint",
        default=os.environ.get("DOMA_API_KEY"),
    )

    parser.add_argument(
        "--oracle-address",
        dest="oracle_address",
        type=str,
        help="Address of the rank oracle contract (required)",
        default=os.environ.get("DOMA_RANK_ORACLE_ADDRESS"),
    )

    parser.add_argument(
        "--interval",
        type=int,
        help="Milliseconds between domain cycles (default: 600000)",
        default=int(os.environ.get("UPDATE_INTERVAL_MS") or "600000"),
    )

    parser.add_argument(
        "--crypto-interval",
        dest="crypto_interval",
        type=int,
        help="Milliseconds between crypto cycles (default: 1800000)",
        default=int(os.environ.get("CRYPTO_UPDATE_INTERVAL_MS") or "1800000"),
    )

    parser.add_argument(
        "--max-tokens",
        dest="max_tokens",
        type=int,
        help="Maximum assets processed per domain cycle (default: 50)",
        default=int(os.environ.get("MAX_TOKENS_PER_RUN") or "50"),
    )

    parser.add_argument(
        "--update-delay",
        dest="update_delay",
        type=int,
        help="Milliseconds between submitted updates (default: 2000)",
        default=int(os.environ.get("DELAY_BETWEEN_UPDATES_MS") or "2000"),
    )

    parser.add_argument(
        "--min-change",
        dest="min_change",
        type=float,
        help="Minimum price change percent to submit an update (default: 1.0)",
        default=float(os.environ.get("MIN_PRICE_CHANGE_PERCENT") or "1.0"),
    )

    parser.add_argument(
        "--crypto-api-url",
        dest="crypto_api_url",
        type=str,
        help="CoinGecko API base URL (default: chosen by API key tier)",
        default=os.environ.get("CRYPTO_API_URL"),
    )

    parser.add_argument(
        "--crypto-api-key",
        dest="crypto_api_key",
        type=str,
        help="CoinGecko API key (prefix with 'demo:' for demo keys)",
        default=os.environ.get("CRYPTO_API_KEY"),
    )

    parser.add_argument(
        "--confirmation-timeout",
        dest="confirmation_timeout",
        type=float,
        help="Seconds to wait for a transaction receipt (default: 120)",
        default=float(os.environ.get("CONFIRMATION_TIMEOUT") or "120"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for HTTP requests in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--no-crypto",
        dest="no_crypto",
        action="store_true",
        help="Disable the crypto price pipeline",
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run each enabled pipeline once and exit",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


def validate_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    """Reject invalid configuration through ``parser.error`` (exit status 2)."""
    if not args.oracle_address:
        parser.error("--oracle-address or DOMA_RANK_ORACLE_ADDRESS is required")
    if not is_valid_address(args.oracle_address):
        parser.error(f"Invalid oracle address: {args.oracle_address}")
    if args.interval <= 0:
        parser.error("--interval must be positive")
    if args.crypto_interval <= 0:
        parser.error("--crypto-interval must be positive")
    if args.max_tokens < 1:
        parser.error("--max-tokens must be at least 1")
    if args.update_delay < 0:
        parser.error("--update-delay must be non-negative")
    if args.min_change < 0:
        parser.error("--min-change must be non-negative")
    if args.confirmation_timeout <= 0:
        parser.error("--confirmation-timeout must be positive")
    if args.fetch_timeout <= 0:
        parser.error("--fetch-timeout must be positive")


def build_orchestrator(args: argparse.Namespace, private_key: str) -> OracleOrchestrator:
    """Construct every component from parsed arguments.

    :param args: Validated CLI arguments.
    :param private_key: Hex private key of the updater account.
    :returns: Ready-to-run orchestrator.
    """
    contract_utility = ContractUtility(
        args.network, private_key=private_key, rpc_url=args.rpc_url
    )
    w3 = contract_utility.w3

    signer = LocalAccountSigner(
        w3,
        contract_utility.account.address,
        receipt_timeout=args.confirmation_timeout,
    )
    broadcaster = Broadcaster(
        w3,
        contract_utility.contract(args.oracle_address, "DomaRankOracle"),
        signer,
        delay_between_updates=args.update_delay / 1000,
        min_change_percent=args.min_change,
    )

    collector = Collector(
        discovery=DiscoveryClient(
            args.subgraph_url, api_key=args.subgraph_api_key, timeout=args.fetch_timeout
        ),
        detail=DetailClient(
            args.subgraph_url, api_key=args.subgraph_api_key, timeout=args.fetch_timeout
        ),
        pool_reader=PoolPriceReader(w3),
    )

    crypto_source = None
    if not args.no_crypto:
        crypto_source = CryptoPriceSource(
            CoinGeckoClient(
                api_key=args.crypto_api_key,
                timeout=args.fetch_timeout,
                base_url=args.crypto_api_url,
            )
        )

    return OracleOrchestrator(
        collector=collector,
        engine=ScoringEngine(),
        broadcaster=broadcaster,
        crypto_source=crypto_source,
        interval=args.interval / 1000,
        crypto_interval=args.crypto_interval / 1000,
        max_tokens=args.max_tokens,
    )


def main() -> None:
    """Main entry point for the Collateral Oracle CLI."""
    parser = build_parser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    validate_args(parser, args)

    private_key = os.environ.get("ORACLE_UPDATER_PRIVATE_KEY")
    if not private_key:
        parser.error("ORACLE_UPDATER_PRIVATE_KEY environment variable is required")

    if not args.subgraph_api_key:
        logger.warning("No DOMA_API_KEY configured, discovery requests may be rejected")

    # Log configuration
    logger.info("=" * 60)
    logger.info("Collateral Oracle")
    logger.info("=" * 60)
    logger.info(f"Network:           {args.network}")
    logger.info(f"RPC URL:           {args.rpc_url or 'network default'}")
    logger.info(f"Subgraph:          {args.subgraph_url}")
    logger.info(f"Oracle:            {args.oracle_address}")
    logger.info(f"Interval:          {args.interval / 1000:g}s")
    if args.no_crypto:
        logger.info("Crypto Interval:   disabled")
    else:
        logger.info(f"Crypto Interval:   {args.crypto_interval / 1000:g}s")
    logger.info(f"Max Tokens:        {args.max_tokens}")
    logger.info(f"Update Delay:      {args.update_delay}ms")
    logger.info(f"Min Change:        {args.min_change}%")
    logger.info(f"Mode:              {'once' if args.once else 'scheduler'}")
    logger.info("=" * 60)

    try:
        orchestrator = build_orchestrator(args, private_key)
        if args.once:
            stats = asyncio.run(orchestrator.run_once())
            logger.info(f"Statistics: {stats}")
        else:
            asyncio.run(orchestrator.run())
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
