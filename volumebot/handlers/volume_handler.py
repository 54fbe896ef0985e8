import asyncio
from typing import Any, Dict, List

from telegram import Bot, Update
from telegram.constants import ParseMode
from telegram.error import BadRequest
from telegram.ext import (
    CallbackContext,
    CallbackQueryHandler,
    CommandHandler,
    ConversationHandler,
    MessageHandler,
    filters
)
from loguru import logger

from volumebot.config import CONVERSATION_TIMEOUT, CallbackPrefix, ConversationState
from volumebot.errors import VolumeBotError
from volumebot.events.event_system import event_system
from volumebot.solana.integration import VolumeBotOrchestrator
from volumebot.solana.models import SessionStatus, TradeProvider
from volumebot.solana.swap_executor import TradeConfig
from volumebot.solana.wallet_manager import TradeWallet
from volumebot.state.session_manager import ActiveRun, session_manager
from volumebot.utils.keyboard_utils import (
    confirm_keyboard,
    duration_keyboard,
    platform_keyboard,
    priority_fee_keyboard,
    slippage_keyboard,
    stop_keyboard
)
from volumebot.utils.message_utils import (
    format_duration_prompt,
    format_error_message,
    format_final_summary,
    format_platform_prompt,
    format_priority_fee_prompt,
    format_session_summary,
    format_slippage_prompt,
    format_status_message,
    format_token_prompt,
    format_trade_amount_prompt,
    format_welcome_message
)
from volumebot.utils.validation_utils import validate_token_address, validate_trade_amount_input


def build_orchestrator(trade_config: TradeConfig) -> VolumeBotOrchestrator:
    """Create the components for one session run."""
    return VolumeBotOrchestrator(trade_config=trade_config, events=event_system)


async def start(update: Update, context: CallbackContext):
    """
    Greet the user.

    Args:
        update: The update object
        context: The context object
    """
    user = update.effective_user
    logger.bind(user_id=user.id, username=user.username).info(f"User {user.id} started the bot")
    await update.effective_message.reply_text(format_welcome_message())


async def begin(update: Update, context: CallbackContext) -> int:
    """
    Start the configuration wizard.

    Args:
        update: The update object
        context: The context object

    Returns:
        The next state
    """
    user = update.effective_user

    if session_manager.get_run(user.id) is not None:
        await update.effective_message.reply_text(
            "A session is already running. Use /stop to stop it first."
        )
        return ConversationHandler.END

    # Start from a clean wizard
    session_manager.clear_settings(user.id)
    session_manager.expire_stale_settings()

    await update.effective_message.reply_text(
        format_platform_prompt(),
        reply_markup=platform_keyboard()
    )
    return ConversationState.PLATFORM


async def platform_choice(update: Update, context: CallbackContext) -> int:
    query = update.callback_query
    await query.answer()

    user = update.effective_user
    provider = TradeProvider(query.data[len(CallbackPrefix.PLATFORM):]).value
    session_manager.set_setting(user.id, "provider", provider)

    await query.edit_message_text(format_token_prompt(provider), parse_mode=ParseMode.MARKDOWN)
    return ConversationState.TOKEN_ADDRESS


async def token_address_input(update: Update, context: CallbackContext) -> int:
    user = update.effective_user
    is_valid, value = validate_token_address(update.message.text)

    if not is_valid:
        await update.message.reply_text(format_error_message(value))
        return ConversationState.TOKEN_ADDRESS

    session_manager.set_setting(user.id, "token_address", value)
    await update.message.reply_text(format_trade_amount_prompt())
    return ConversationState.TRADE_AMOUNT


async def trade_amount_input(update: Update, context: CallbackContext) -> int:
    user = update.effective_user
    is_valid, value = validate_trade_amount_input(update.message.text)

    if not is_valid:
        await update.message.reply_text(format_error_message(value))
        return ConversationState.TRADE_AMOUNT

    session_manager.set_setting(user.id, "trade_amount_usd", value)
    await update.message.reply_text(format_priority_fee_prompt(), reply_markup=priority_fee_keyboard())
    return ConversationState.PRIORITY_FEE


async def priority_fee_choice(update: Update, context: CallbackContext) -> int:
    query = update.callback_query
    await query.answer()

    fee = float(query.data[len(CallbackPrefix.PRIORITY_FEE):])
    session_manager.set_setting(update.effective_user.id, "priority_fee", fee)

    await query.edit_message_text(format_slippage_prompt(), reply_markup=slippage_keyboard())
    return ConversationState.SLIPPAGE


async def slippage_choice(update: Update, context: CallbackContext) -> int:
    query = update.callback_query
    await query.answer()

    slippage = int(query.data[len(CallbackPrefix.SLIPPAGE):])
    session_manager.set_setting(update.effective_user.id, "slippage", slippage)

    await query.edit_message_text(format_duration_prompt(), reply_markup=duration_keyboard())
    return ConversationState.DURATION


async def duration_choice(update: Update, context: CallbackContext) -> int:
    query = update.callback_query
    await query.answer()

    user = update.effective_user
    hours = int(query.data[len(CallbackPrefix.DURATION):])
    session_manager.set_setting(user.id, "duration_hours", hours)

    await query.edit_message_text(
        format_session_summary(session_manager.get_settings(user.id)),
        reply_markup=confirm_keyboard(),
        parse_mode=ParseMode.MARKDOWN
    )
    return ConversationState.CONFIRM


async def confirm_choice(update: Update, context: CallbackContext) -> int:
    """
    Start the session on confirmation, or cancel the wizard.

    Args:
        update: The update object
        context: The context object

    Returns:
        ConversationHandler.END
    """
    query = update.callback_query
    await query.answer()
    user = update.effective_user

    if query.data == CallbackPrefix.CONFIRM_CANCEL:
        session_manager.clear_settings(user.id)
        await query.edit_message_text("Session setup cancelled. Use /begin to start again.")
        return ConversationHandler.END

    settings = session_manager.get_settings(user.id)
    if "duration_hours" not in settings:
        await query.edit_message_text(format_error_message("Session expired. Use /begin to start again."))
        return ConversationHandler.END

    try:
        trade_config = TradeConfig(
            trade_amount_usd=settings["trade_amount_usd"],
            slippage_bps=settings["slippage"] * 100,
            priority_fee_sol=settings["priority_fee"]
        )
        orchestrator = build_orchestrator(trade_config)
        wallets = orchestrator.load_wallets()
    except (VolumeBotError, ValueError) as e:
        logger.error(f"Could not start session for user {user.id}: {str(e)}")
        await query.edit_message_text(format_error_message(str(e)))
        return ConversationHandler.END

    await query.edit_message_text(
        f"🚀 Starting volume bot with {len(wallets)} trader wallets..."
    )
    status_message = await context.bot.send_message(
        chat_id=update.effective_chat.id,
        text="⏳ Waiting for the first round to finish...",
        reply_markup=stop_keyboard()
    )

    task = asyncio.create_task(run_volume_session(
        context.bot,
        update.effective_chat.id,
        user.id,
        orchestrator,
        wallets,
        settings,
        status_message.message_id
    ))
    session_manager.register_run(
        user.id,
        ActiveRun(orchestrator=orchestrator, task=task, status_message_id=status_message.message_id)
    )
    session_manager.clear_settings(user.id)
    return ConversationHandler.END


async def run_volume_session(
    bot: Bot,
    chat_id: int,
    user_id: int,
    orchestrator: VolumeBotOrchestrator,
    wallets: List[TradeWallet],
    settings: Dict[str, Any],
    status_message_id: int
):
    """The background task that runs a session and reports back to the chat."""
    token_address = settings["token_address"]

    async def update_status(status: SessionStatus):
        try:
            await bot.edit_message_text(
                chat_id=chat_id,
                message_id=status_message_id,
                text=format_status_message(status, token_address),
                reply_markup=stop_keyboard() if status.is_running else None,
                parse_mode=ParseMode.MARKDOWN
            )
        except BadRequest as e:
            # Telegram rejects edits that do not change the text
            logger.debug(f"Status message not updated: {str(e)}")

    try:
        stats = await orchestrator.start(
            token_address,
            settings["duration_hours"] * 3600,
            TradeProvider(settings["provider"]),
            wallets=wallets,
            status_listener=update_status
        )
        await bot.send_message(
            chat_id=chat_id,
            text=format_final_summary(stats),
            parse_mode=ParseMode.MARKDOWN
        )
    except Exception as e:
        logger.exception(f"Volume session for user {user_id} failed: {str(e)}")
        await bot.send_message(chat_id=chat_id, text=format_error_message(str(e)))
    finally:
        session_manager.pop_run(user_id)
        await orchestrator.close()


async def stop(update: Update, context: CallbackContext):
    """
    Stop the user's running session, from /stop or the Stop Bot button.

    Args:
        update: The update object
        context: The context object
    """
    query = update.callback_query
    if query is not None:
        await query.answer()

    user = update.effective_user
    run = session_manager.get_run(user.id)
    if run is None:
        await update.effective_message.reply_text("No active session to stop.")
        return

    run.orchestrator.stop()
    logger.info(f"User {user.id} stopped the volume session")
    await update.effective_message.reply_text(
        "🛑 Stopping the bot. The current round will finish before the session ends."
    )


async def cancel(update: Update, context: CallbackContext) -> int:
    session_manager.clear_settings(update.effective_user.id)
    await update.effective_message.reply_text("Session setup cancelled.")
    return ConversationHandler.END


def register_volume_handler(application):
    """
    Register the volume bot command and conversation handlers.
    """
    conversation_handler = ConversationHandler(
        entry_points=[CommandHandler("begin", begin)],
        states={
            ConversationState.PLATFORM: [
                CallbackQueryHandler(platform_choice, pattern=rf"^{CallbackPrefix.PLATFORM}")
            ],
            ConversationState.TOKEN_ADDRESS: [
                MessageHandler(filters.TEXT & ~filters.COMMAND, token_address_input)
            ],
            ConversationState.TRADE_AMOUNT: [
                MessageHandler(filters.TEXT & ~filters.COMMAND, trade_amount_input)
            ],
            ConversationState.PRIORITY_FEE: [
                CallbackQueryHandler(priority_fee_choice, pattern=rf"^{CallbackPrefix.PRIORITY_FEE}")
            ],
            ConversationState.SLIPPAGE: [
                CallbackQueryHandler(slippage_choice, pattern=rf"^{CallbackPrefix.SLIPPAGE}")
            ],
            ConversationState.DURATION: [
                CallbackQueryHandler(duration_choice, pattern=rf"^{CallbackPrefix.DURATION}")
            ],
            ConversationState.CONFIRM: [
                CallbackQueryHandler(
                    confirm_choice,
                    pattern=rf"^({CallbackPrefix.CONFIRM_START}|{CallbackPrefix.CONFIRM_CANCEL})$"
                )
            ]
        },
        fallbacks=[CommandHandler("cancel", cancel), CommandHandler("begin", begin)],
        conversation_timeout=CONVERSATION_TIMEOUT,
        allow_reentry=True
    )

    application.add_handler(CommandHandler("start", start))
    application.add_handler(CommandHandler("stop", stop))
    application.add_handler(CallbackQueryHandler(stop, pattern=rf"^{CallbackPrefix.STOP_BOT}$"))
    application.add_handler(conversation_handler)
