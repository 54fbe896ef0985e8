"""Command line entry point for the volume bot.

Usage:
    python -m volumebot.cli create-wallets --count 10
    python -m volumebot.cli fund --sol-per-wallet 0.01
    python -m volumebot.cli run --token <MINT> --provider pump --duration-minutes 60
"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional

from loguru import logger

from volumebot.config import (
    DEFAULT_PRIORITY_FEE_SOL,
    DEFAULT_SLIPPAGE_BPS,
    DEFAULT_SOL_PER_WALLET,
    DEFAULT_TRADE_AMOUNT_USD,
    MAIN_WALLET_PRIVATE_KEY,
)
from volumebot.errors import VolumeBotError
from volumebot.events.event_system import event_system
from volumebot.main import log_trade_event, setup_logging, TRADE_EVENT_TYPES
from volumebot.solana.integration import VolumeBotOrchestrator
from volumebot.solana.models import SessionStatus, TradeProvider
from volumebot.solana.swap_executor import TradeConfig
from volumebot.solana.wallet_manager import WalletManager, keypair_from_base58
from volumebot.utils.message_utils import format_remaining_time
from volumebot.utils.validation_utils import validate_token_address


def parse_token(value: str) -> str:
    is_valid, result = validate_token_address(value)
    if not is_valid:
        raise argparse.ArgumentTypeError(result)
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="volumebot",
        description="Solana volume trading bot",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Override LOG_LEVEL",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create-wallets", help="Generate and store trader wallets")
    create.add_argument("--count", type=int, required=True, help="Number of wallets to create")

    fund = subparsers.add_parser("fund", help="Top up trader wallets from the main wallet")
    fund.add_argument(
        "--sol-per-wallet",
        type=float,
        default=DEFAULT_SOL_PER_WALLET,
        help=f"Target SOL balance per wallet (default: {DEFAULT_SOL_PER_WALLET})",
    )

    run = subparsers.add_parser("run", help="Run a volume session")
    run.add_argument("--token", type=parse_token, required=True, help="Token mint address")
    run.add_argument(
        "--provider",
        choices=[p.value for p in TradeProvider],
        default=TradeProvider.PUMP.value,
        help="Trade provider (default: pump)",
    )
    run.add_argument("--duration-minutes", type=float, required=True, help="Session length in minutes")
    run.add_argument("--trade-amount-usd", type=float, default=DEFAULT_TRADE_AMOUNT_USD)
    run.add_argument("--slippage-bps", type=int, default=DEFAULT_SLIPPAGE_BPS)
    run.add_argument("--priority-fee", type=float, default=DEFAULT_PRIORITY_FEE_SOL, help="Priority fee in SOL")
    run.add_argument("--wallets", type=int, default=None, help="Only use the first N stored wallets")
    return parser


def cmd_create_wallets(args: argparse.Namespace) -> None:
    """Create trader wallets."""
    main_wallet_pubkey = None
    if MAIN_WALLET_PRIVATE_KEY:
        main_wallet_pubkey = str(keypair_from_base58(MAIN_WALLET_PRIVATE_KEY).pubkey())

    wallets = WalletManager().create_trader_wallets(args.count, main_wallet_pubkey=main_wallet_pubkey)
    for wallet in wallets:
        print(f"{wallet.index:>4}  {wallet.public_key}")


async def cmd_fund(args: argparse.Namespace) -> None:
    """Fund trader wallets."""
    orchestrator = VolumeBotOrchestrator()
    try:
        signatures = await orchestrator.fund_wallets(args.sol_per_wallet)
    finally:
        await orchestrator.close()

    print(f"Sent {len(signatures)} funding transfers")


def print_status(status: SessionStatus) -> None:
    print(f"Successful trades: {status.success_rate} | remaining: {format_remaining_time(status.remaining_time)}")


async def cmd_run(args: argparse.Namespace) -> None:
    """Run a volume session until it completes or Ctrl-C is pressed."""
    trade_config = TradeConfig(
        trade_amount_usd=args.trade_amount_usd,
        slippage_bps=args.slippage_bps,
        priority_fee_sol=args.priority_fee,
    )

    await event_system.start()
    for event_type in TRADE_EVENT_TYPES:
        await event_system.subscribe(event_type, log_trade_event)

    orchestrator = VolumeBotOrchestrator(trade_config=trade_config, events=event_system)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.stop)
    except NotImplementedError:
        logger.debug("Signal handlers are not supported on this platform")

    try:
        wallets = orchestrator.load_wallets(limit=args.wallets)
        stats = await orchestrator.start(
            args.token,
            args.duration_minutes * 60,
            TradeProvider(args.provider),
            wallets=wallets,
            status_listener=print_status,
        )
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass
        await orchestrator.close()
        await event_system.flush()
        await event_system.stop()

    print(f"\nSession finished: {stats.success_rate} successful trades, {stats.skipped_trades} skipped sells")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level:
        setup_logging(args.log_level.upper(), log_file=False)
    else:
        setup_logging(log_file=False)

    try:
        if args.command == "create-wallets":
            cmd_create_wallets(args)
        elif args.command == "fund":
            asyncio.run(cmd_fund(args))
        elif args.command == "run":
            asyncio.run(cmd_run(args))
    except (VolumeBotError, ValueError) as e:
        logger.error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
