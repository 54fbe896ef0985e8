from typing import List, Sequence, Tuple

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from volumebot.config import (
    CallbackPrefix,
    DURATION_CHOICES,
    PRIORITY_FEE_CHOICES,
    SLIPPAGE_CHOICES,
)
from volumebot.solana.models import TradeProvider

# Longest label that renders on one line in most Telegram clients
MAX_LABEL_LENGTH = 30


def button(label: str, callback_data: str) -> InlineKeyboardButton:
    if len(label) > MAX_LABEL_LENGTH:
        label = label[:MAX_LABEL_LENGTH - 3] + "..."
    return InlineKeyboardButton(text=label, callback_data=callback_data)


def grid_keyboard(choices: Sequence[Tuple[str, str]], columns: int = 1) -> InlineKeyboardMarkup:
    """
    Lay out (label, callback data) choices row by row.

    Args:
        choices: Button labels with their callback data
        columns: Buttons per row; the last row may be shorter

    Returns:
        Inline keyboard markup
    """
    buttons = [button(label, data) for label, data in choices]
    rows: List[List[InlineKeyboardButton]] = [
        buttons[start:start + columns] for start in range(0, len(buttons), columns)
    ]
    return InlineKeyboardMarkup(rows)


def platform_keyboard() -> InlineKeyboardMarkup:
    return grid_keyboard([
        ("PumpFun (Bonding Curve)", f"{CallbackPrefix.PLATFORM}{TradeProvider.PUMP.value}"),
        ("Jupiter (DEX)", f"{CallbackPrefix.PLATFORM}{TradeProvider.JUPITER.value}"),
    ])


def priority_fee_keyboard() -> InlineKeyboardMarkup:
    return grid_keyboard(
        [(label, f"{CallbackPrefix.PRIORITY_FEE}{fee}") for label, fee in PRIORITY_FEE_CHOICES],
        columns=2
    )


def slippage_keyboard() -> InlineKeyboardMarkup:
    return grid_keyboard(
        [(f"{percent}%", f"{CallbackPrefix.SLIPPAGE}{percent}") for percent in SLIPPAGE_CHOICES],
        columns=3
    )


def duration_keyboard() -> InlineKeyboardMarkup:
    return grid_keyboard(
        [(f"{hours} Hours", f"{CallbackPrefix.DURATION}{hours}") for hours in DURATION_CHOICES],
        columns=3
    )


def confirm_keyboard() -> InlineKeyboardMarkup:
    """Start/Cancel row shown under the session summary."""
    return grid_keyboard([
        ("Start Bot", CallbackPrefix.CONFIRM_START),
        ("Cancel", CallbackPrefix.CONFIRM_CANCEL),
    ], columns=2)


def stop_keyboard() -> InlineKeyboardMarkup:
    return grid_keyboard([("Stop Bot", CallbackPrefix.STOP_BOT)])
