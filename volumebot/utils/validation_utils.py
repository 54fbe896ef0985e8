from typing import Tuple, Union

from solders.pubkey import Pubkey

from volumebot.config import (
    MAX_TRADE_AMOUNT_USD,
    MAX_TRADER_WALLETS,
    MIN_TRADE_AMOUNT_USD,
    MIN_TRADER_WALLETS,
)


def validate_token_address(text: str) -> Tuple[bool, str]:
    """
    Validate a Solana token mint address.

    Args:
        text: The user input text

    Returns:
        A tuple of (is_valid, address_or_error_message)
    """
    address = text.strip()

    if not address:
        return False, "Please enter a token address."

    try:
        Pubkey.from_string(address)
    except ValueError:
        return False, "Invalid token address. Solana addresses are base58 encoded public keys."

    return True, address


def validate_trade_amount_input(text: str) -> Tuple[bool, Union[float, str]]:
    """
    Validate the per-trade amount in USD.

    Args:
        text: User input text

    Returns:
        Tuple (is_valid, value_or_error)
    """
    try:
        # Remove commas and currency signs if present
        amount = float(text.replace(",", "").replace("$", "").strip())
    except ValueError:
        return False, "Please enter a valid USD amount (e.g., 0.01)."

    if amount < MIN_TRADE_AMOUNT_USD:
        return False, f"Trade amount must be at least ${MIN_TRADE_AMOUNT_USD}."

    if amount > MAX_TRADE_AMOUNT_USD:
        return False, f"Trade amount cannot exceed ${MAX_TRADE_AMOUNT_USD:,.0f}."

    return True, amount


def validate_wallet_count_input(text: str) -> Tuple[bool, Union[int, str]]:
    """
    Validate the number of trader wallets.

    Args:
        text: The user input text

    Returns:
        A tuple of (is_valid, value_or_error_message)
    """
    try:
        value = int(text.strip())
    except ValueError:
        return False, "Please enter a valid number."

    if value < MIN_TRADER_WALLETS:
        return False, f"Number of trader wallets must be at least {MIN_TRADER_WALLETS}."

    if value > MAX_TRADER_WALLETS:
        return False, f"Number of trader wallets cannot exceed {MAX_TRADER_WALLETS}."

    return True, value
