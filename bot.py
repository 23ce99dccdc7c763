import logging

from telegram import Update
from telegram.error import BadRequest, Forbidden, TimedOut, NetworkError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    MessageHandler,
    CallbackQueryHandler,
    ContextTypes,
    TypeHandler,
    filters,
)

from config import AppContext, Settings, load_settings, setup_logging
from database.database import init_db
from database.errors import TransactionFailure
import handlers.cards as hand_card
import handlers.decks as hand_deck
import handlers.help as hand_help
import handlers.settings as hand_settings
import handlers.speech as hand_speech
import handlers.start as hand_start
import handlers.study as hand_study
import handlers.transfer as hand_transfer
from utils.constants import ID_PATTERN

logger = logging.getLogger(__name__)


def build_application(settings: Settings) -> Application:
    builder = ApplicationBuilder().token(settings.token)
    if settings.proxy_url:
        builder = builder.proxy(settings.proxy_url).get_updates_proxy(settings.proxy_url)
    application = builder.build()
    application.bot_data['app'] = AppContext(settings=settings)

    # Owner lock runs before everything else
    application.add_handler(TypeHandler(Update, hand_start.owner_guard), group=-1)

    application.add_handler(CommandHandler('start', hand_start.start))

    # Conversations
    application.add_handler(hand_card.add_card_handler)
    application.add_handler(hand_card.edit_card_handler)
    application.add_handler(hand_deck.create_deck_handler)
    application.add_handler(hand_deck.rename_deck_handler)
    application.add_handler(hand_deck.search_deck_handler)

    # Slash commands
    application.add_handler(CommandHandler('menu', hand_start.menu_command))
    application.add_handler(CommandHandler('study', hand_study.study_command))
    application.add_handler(CommandHandler('stop', hand_study.stop))
    application.add_handler(CommandHandler('decks', hand_deck.decks_command))
    application.add_handler(CommandHandler('find', hand_deck.find_command))
    application.add_handler(CommandHandler('export', hand_transfer.export_command))
    application.add_handler(CommandHandler('backup', hand_transfer.backup_command))
    application.add_handler(CommandHandler('reset', hand_transfer.reset_command))
    application.add_handler(CommandHandler('settings', hand_settings.settings_command))
    application.add_handler(CommandHandler('help', hand_help.help_command))

    # CSV upload
    application.add_handler(MessageHandler(filters.Document.FileExtension('csv'), hand_transfer.receive_csv))

    # Menu
    application.add_handler(CallbackQueryHandler(hand_start.main_menu, pattern='^main_menu$'))
    application.add_handler(CallbackQueryHandler(hand_help.help_entry, pattern='^help$'))
    application.add_handler(CallbackQueryHandler(hand_settings.settings_entry, pattern='^settings$'))
    application.add_handler(CallbackQueryHandler(hand_settings.set_front, pattern=r'^set_front_(english|german)$'))

    # My Decks
    application.add_handler(CallbackQueryHandler(hand_deck.my_decks_entry, pattern='^my_decks$'))
    application.add_handler(CallbackQueryHandler(hand_deck.decks_page, pattern=r'^decks_page_\d+$'))
    application.add_handler(CallbackQueryHandler(hand_deck.deck_open, pattern=rf'^deck_open_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_deck.deck_cards_page, pattern=rf'^deck_page_{ID_PATTERN}_\d+$'))
    application.add_handler(CallbackQueryHandler(hand_deck.deck_delete_confirm, pattern=rf'^deck_delete_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_deck.deck_delete_yes, pattern=rf'^deck_delete_yes_{ID_PATTERN}$'))

    # Cards
    application.add_handler(CallbackQueryHandler(hand_card.card_info, pattern=rf'^card_info_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_card.card_delete_confirm, pattern=rf'^card_delete_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_card.card_delete_yes, pattern=rf'^card_delete_yes_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_speech.speak, pattern=rf'^speak_{ID_PATTERN}$'))

    # Study session
    application.add_handler(CallbackQueryHandler(hand_study.study_entry, pattern='^study$'))
    application.add_handler(CallbackQueryHandler(hand_study.study_deck_selected, pattern=rf'^study_deck_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_study.study_mode_selected, pattern=r'^study_mode_(flash|gender)$'))
    application.add_handler(CallbackQueryHandler(hand_study.study_goal_selected, pattern=r'^study_goal_\d+$'))
    application.add_handler(CallbackQueryHandler(hand_study.flip, pattern='^study_flip$'))
    application.add_handler(CallbackQueryHandler(hand_study.answer_gender, pattern=r'^study_gender_(der|die|das)$'))
    application.add_handler(CallbackQueryHandler(hand_study.reveal, pattern='^study_reveal$'))
    application.add_handler(CallbackQueryHandler(hand_study.grade, pattern=r'^study_grade_(again|good|easy)$'))
    application.add_handler(CallbackQueryHandler(hand_study.stop, pattern='^study_stop$'))

    # Export / reset
    application.add_handler(CallbackQueryHandler(hand_transfer.export_deck, pattern=rf'^export_deck_{ID_PATTERN}$'))
    application.add_handler(CallbackQueryHandler(hand_transfer.reset_yes, pattern='^reset_yes$'))

    application.add_error_handler(error_handler)
    return application


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE):
    """Global error handler: logs the error and tries to notify the user."""
    error = context.error

    if isinstance(error, Forbidden):
        # User blocked the bot: nothing we can do
        logger.warning(f"Bot was blocked by user: {error}")
        return

    if isinstance(error, (TimedOut, NetworkError)):
        logger.warning(f"Network issue: {error}")
        return

    if isinstance(error, BadRequest):
        msg = str(error).lower()
        if "message is not modified" in msg:
            # User tapped the same button twice: harmless, ignore
            return
        if "message to edit not found" in msg or "message to delete not found" in msg:
            return

    logger.error(f"Update {update} caused error: {error}", exc_info=error)

    if isinstance(error, TransactionFailure):
        text = "\u26a0\ufe0f Couldn't save that. Nothing was changed, please try again."
    else:
        text = "\u26a0\ufe0f Something went wrong. Try /start to reset."

    if isinstance(update, Update) and update.effective_chat:
        try:
            await context.bot.send_message(chat_id=update.effective_chat.id, text=text)
        except (BadRequest, Forbidden, NetworkError) as e:
            logger.warning(f"Could not notify user about the error: {e}")


def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)

    if not settings.token:
        raise SystemExit("TELEGRAM_BOT_TOKEN is not set")

    logger.info(f"Init db at {settings.db_path}")
    init_db(settings.db_path)

    logger.info("Starting app")
    build_application(settings).run_polling()


if __name__ == '__main__':
    main()
