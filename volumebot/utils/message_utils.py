from typing import Dict, Any

from volumebot.solana.models import SessionStats, SessionStatus, TradeProvider

PROVIDER_NAMES = {
    TradeProvider.PUMP.value: "PumpFun (Bonding Curve)",
    TradeProvider.JUPITER.value: "Jupiter (DEX)",
}


def format_welcome_message() -> str:
    """
    Format the welcome message shown when a user first starts the bot.

    Returns:
        Formatted welcome message text
    """
    return (
        "Welcome to the Volume Bot! 🚀\n\n"
        "This bot runs buy and sell cycles for an SPL token across your trader wallets.\n\n"
        "Use /begin to configure a new session and /stop to stop a running one."
    )


def format_platform_prompt() -> str:
    return "Select the trading platform:"


def format_token_prompt(provider: str) -> str:
    return (
        f"Platform: *{PROVIDER_NAMES.get(provider, provider)}*\n\n"
        f"Please enter the token mint address:"
    )


def format_trade_amount_prompt() -> str:
    return "Enter the amount to trade per transaction in USD (e.g., 0.01):"


def format_priority_fee_prompt() -> str:
    return "Select the priority fee (SOL):"


def format_slippage_prompt() -> str:
    return "Select the slippage tolerance:"


def format_duration_prompt() -> str:
    return "Select how long the bot should run:"


def format_remaining_time(seconds: int) -> str:
    """
    Format a number of seconds as hours, minutes and seconds.

    Args:
        seconds: Whole seconds

    Returns:
        Text such as "5h 3m 2s"
    """
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes}m {secs}s"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_session_summary(settings: Dict[str, Any]) -> str:
    """
    Format the settings summary shown before a session starts.

    Args:
        settings: Wizard values (provider, token_address, trade_amount_usd,
            priority_fee, slippage, duration_hours)

    Returns:
        Formatted summary message
    """
    provider = settings.get("provider", "")
    return (
        f"📋 *Session Summary*\n\n"
        f"Platform: {PROVIDER_NAMES.get(provider, provider)}\n"
        f"Token: `{settings.get('token_address')}`\n"
        f"Amount per trade: ${settings.get('trade_amount_usd')}\n"
        f"Priority fee: {settings.get('priority_fee')} SOL\n"
        f"Slippage: {settings.get('slippage')}%\n"
        f"Duration: {settings.get('duration_hours')} hours\n\n"
        f"Start the bot with these settings?"
    )


def format_status_message(status: SessionStatus, token_address: str) -> str:
    """
    Format the live status message edited after every round.

    Args:
        status: Latest session status
        token_address: Token being traded

    Returns:
        Formatted status message
    """
    state = "🟢 Running" if status.is_running else "🔴 Stopped"
    return (
        f"🤖 *Volume Bot Status*\n\n"
        f"Status: {state}\n"
        f"Token: `{token_address}`\n"
        f"Successful trades: {status.success_rate}\n"
        f"Time remaining: {format_remaining_time(status.remaining_time)}"
    )


def format_final_summary(stats: SessionStats) -> str:
    """
    Format the summary sent when a session ends.

    Args:
        stats: Final session statistics

    Returns:
        Formatted summary message
    """
    message = (
        f"🏁 *Session Finished*\n\n"
        f"Successful trades: {stats.success_rate}\n"
        f"Failed trades: {stats.failed_trades}\n"
    )
    if stats.skipped_trades:
        message += f"Skipped sells (no balance): {stats.skipped_trades}\n"
    return message


def format_error_message(error_message: str) -> str:
    """
    Format an error message.

    Args:
        error_message: The error message

    Returns:
        Formatted error message
    """
    return f"❌ Error: {error_message}"
