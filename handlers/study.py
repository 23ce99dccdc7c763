import html
import logging

from telegram import Update, InlineKeyboardButton, InlineKeyboardMarkup, CallbackQuery
from telegram.ext import ContextTypes

import database.database as db
from database.errors import NotFound
from utils.constants import FRONT_SETTING, GOAL_CHOICES, MENU_BUTTON
from utils.models import ARTICLES
from utils.session import EmptyDeckError, StudyMode, StudySession
from utils.srs import Grade, format_interval, preview_intervals
from utils.telegram_helpers import get_app, safe_edit_text, safe_send_text
from utils.utils import card_details, german_label, plural, truncate

logger = logging.getLogger(__name__)

GRADE_LABELS = {
    Grade.AGAIN: "\U0001f534 Again",
    Grade.GOOD: "\U0001f7e2 Good",
    Grade.EASY: "\U0001f535 Easy",
}

_NO_SESSION_MARKUP = InlineKeyboardMarkup([
    [InlineKeyboardButton('\U0001f9e0 Study', callback_data='study'), MENU_BUTTON]
])


def get_session(context: ContextTypes.DEFAULT_TYPE, user_id: int) -> StudySession:
    """The user's session object, created on first use."""
    sessions = get_app(context).sessions
    if user_id not in sessions:
        sessions[user_id] = StudySession(get_app(context))
    return sessions[user_id]


# ── Picking deck, mode, goal ──────────────────────────────────

def _deck_picker(context: ContextTypes.DEFAULT_TYPE) -> tuple[str, InlineKeyboardMarkup]:
    app = get_app(context)
    stats = [s for s in db.get_deck_stats(app.db_path, now=app.clock()) if s['card_count'] > 0]

    if not stats:
        return (
            "\U0001f4ad No words to study yet. Add some to a deck first.",
            InlineKeyboardMarkup([
                [InlineKeyboardButton('\U0001f4da My Decks', callback_data='my_decks')],
                [MENU_BUTTON],
            ]),
        )

    buttons = [
        [InlineKeyboardButton(
            f"\U0001f4da {truncate(s['deck'].name, 30)} \u00b7 {s['due_count']} due \u00b7 {s['new_count']} new",
            callback_data=f"study_deck_{s['deck'].id}",
        )]
        for s in stats
    ]
    buttons.append([MENU_BUTTON])
    return "\U0001f9e0 Which deck?", InlineKeyboardMarkup(buttons)


async def study_entry(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    text, markup = _deck_picker(context)
    await safe_edit_text(query, text, reply_markup=markup)


async def study_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """/study slash command."""
    text, markup = _deck_picker(context)
    await safe_send_text(update.message, text, reply_markup=markup)


async def study_deck_selected(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    deck_id = query.data.split('_')[2]  # study_deck_<id>
    app = get_app(context)
    try:
        deck = db.get_deck(app.db_path, deck_id)
    except NotFound:
        text, markup = _deck_picker(context)
        await safe_edit_text(query, f"\u26a0\ufe0f That deck no longer exists.\n\n{text}", reply_markup=markup)
        return

    context.user_data['study_deck_id'] = deck_id
    await safe_edit_text(
        query,
        f"\U0001f4da <b>{html.escape(deck.name)}</b>\n\nHow do you want to study?",
        reply_markup=InlineKeyboardMarkup([
            [
                InlineKeyboardButton('\U0001f0cf Flashcards', callback_data=f'study_mode_{StudyMode.FLASHCARD.value}'),
                InlineKeyboardButton('\U0001f3af Gender quiz', callback_data=f'study_mode_{StudyMode.GENDER_QUIZ.value}'),
            ],
            [InlineKeyboardButton('\u2190 Back', callback_data='study')],
        ]),
    )


async def study_mode_selected(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    context.user_data['study_mode'] = query.data.split('_')[2]  # study_mode_<mode>
    settings = get_app(context).settings
    goals = sorted({settings.clamp_goal(g) for g in GOAL_CHOICES + (settings.default_goal,)})

    buttons = [
        InlineKeyboardButton(
            f"\u2022 {goal} \u2022" if goal == settings.clamp_goal(settings.default_goal) else str(goal),
            callback_data=f'study_goal_{goal}',
        )
        for goal in goals
    ]
    await safe_edit_text(
        query,
        "\U0001f3af How many words this session?",
        reply_markup=InlineKeyboardMarkup([buttons, [InlineKeyboardButton('\u2190 Back', callback_data='study')]]),
    )


async def study_goal_selected(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    app = get_app(context)
    goal = app.settings.clamp_goal(int(query.data.split('_')[2]))  # study_goal_<n>
    deck_id = context.user_data.get('study_deck_id')
    mode = context.user_data.get('study_mode', StudyMode.FLASHCARD.value)

    if not deck_id:
        text, markup = _deck_picker(context)
        await safe_edit_text(query, text, reply_markup=markup)
        return

    session = get_session(context, update.effective_user.id)
    try:
        session.start(deck_id, mode, goal)
    except NotFound:
        text, markup = _deck_picker(context)
        await safe_edit_text(query, f"\u26a0\ufe0f That deck no longer exists.\n\n{text}", reply_markup=markup)
        return
    except EmptyDeckError:
        await safe_edit_text(
            query,
            "\U0001f4ad That deck has no words yet.",
            reply_markup=InlineKeyboardMarkup([
                [InlineKeyboardButton('\u2795 Add word', callback_data=f'card_add_{deck_id}')],
                [MENU_BUTTON],
            ]),
        )
        return

    await _show_current(query, context, session)


# ── Rendering ─────────────────────────────────────────────────

def _grade_row(session: StudySession, now) -> list[InlineKeyboardButton]:
    intervals = preview_intervals(session.current.srs, now)
    return [
        InlineKeyboardButton(
            f"{GRADE_LABELS[grade]} {format_interval(intervals[grade])}",
            callback_data=f'study_grade_{grade.value}',
        )
        for grade in Grade
    ]


def render_flashcard(session: StudySession, front: str, now) -> tuple[str, InlineKeyboardMarkup]:
    card = session.current
    done, goal = session.progress
    progress = f"<i>Flashcards \u00b7 {done + 1}/{goal}</i>"

    if front == 'german':
        question = f"\U0001f1e9\U0001f1ea <b>{html.escape(german_label(card))}</b>"
    else:
        question = f"\U0001f1ec\U0001f1e7 <b>{html.escape(card.english)}</b>"

    if session.flipped:
        text = f"{card_details(card)}\n\n{progress}"
        flip_label = "\U0001f504 Hide"
    else:
        text = f"{question}\n\n{progress}"
        flip_label = "\U0001f440 Show"

    buttons = [
        [
            InlineKeyboardButton(flip_label, callback_data='study_flip'),
            InlineKeyboardButton('\U0001f50a Speak', callback_data=f'speak_{card.id}'),
        ],
        _grade_row(session, now),
        [InlineKeyboardButton('\u23f9 Stop', callback_data='study_stop')],
    ]
    return text, InlineKeyboardMarkup(buttons)


def render_gender_quiz(session: StudySession, now) -> tuple[str, InlineKeyboardMarkup]:
    card = session.current
    done, goal = session.progress
    progress = f"<i>Gender quiz \u00b7 {done + 1}/{goal}</i>"
    question = (
        f"\U0001f1ec\U0001f1e7 {html.escape(card.english)}\n"
        f"\U0001f1e9\U0001f1ea <b>___ {html.escape(card.german)}</b>"
    )

    if not session.answered:
        text = f"{question}\n\nder, die or das?\n\n{progress}"
        buttons = [
            [InlineKeyboardButton(article, callback_data=f'study_gender_{article}') for article in ARTICLES],
            [
                InlineKeyboardButton('\U0001f648 Reveal', callback_data='study_reveal'),
                InlineKeyboardButton('\u23f9 Stop', callback_data='study_stop'),
            ],
        ]
        return text, InlineKeyboardMarkup(buttons)

    answer = html.escape(card.article or '(none)')
    if session.correct:
        verdict = f"\u2705 Richtig! <b>{answer}</b>"
    elif session.choice:
        verdict = f"\u274c It's <b>{answer}</b>, not {html.escape(session.choice)}"
    else:
        verdict = f"\U0001f4a1 Answer: <b>{answer}</b>"

    text = f"{verdict}\n\n{card_details(card)}\n\n{progress}"
    buttons = [
        [InlineKeyboardButton(article, callback_data=f'study_gender_{article}') for article in ARTICLES],
        _grade_row(session, now),
        [
            InlineKeyboardButton('\U0001f50a Speak', callback_data=f'speak_{card.id}'),
            InlineKeyboardButton('\u23f9 Stop', callback_data='study_stop'),
        ],
    ]
    return text, InlineKeyboardMarkup(buttons)


def render_summary(session: StudySession) -> str:
    tally = session.tally
    lines = [
        f"\U0001f389 <b>Session complete!</b> {session.recalled}/{session.done} recalled",
        "",
        f"{GRADE_LABELS[Grade.AGAIN]}: {tally[Grade.AGAIN]}",
        f"{GRADE_LABELS[Grade.GOOD]}: {tally[Grade.GOOD]}",
        f"{GRADE_LABELS[Grade.EASY]}: {tally[Grade.EASY]}",
    ]
    if session.mode is StudyMode.GENDER_QUIZ:
        lines += ["", f"\U0001f3af Articles right: {session.gender_correct}/{session.done}"]
    return '\n'.join(lines)


async def _show_current(query: CallbackQuery, context: ContextTypes.DEFAULT_TYPE, session: StudySession) -> None:
    app = get_app(context)
    now = app.clock()

    if session.is_complete:
        await safe_edit_text(
            query,
            render_summary(session),
            reply_markup=InlineKeyboardMarkup([
                [InlineKeyboardButton('\U0001f501 Study again', callback_data=f'study_deck_{session.deck_id}')],
                [MENU_BUTTON],
            ]),
        )
        return

    if session.mode is StudyMode.GENDER_QUIZ:
        text, markup = render_gender_quiz(session, now)
    else:
        front = db.get_setting(app.db_path, FRONT_SETTING, 'english')
        text, markup = render_flashcard(session, front, now)
    await safe_edit_text(query, text, reply_markup=markup)


async def _active_session(
    query: CallbackQuery,
    context: ContextTypes.DEFAULT_TYPE,
    mode: StudyMode | None = None,
) -> StudySession | None:
    """The user's running session, or None after telling them there isn't one."""
    session = get_session(context, query.from_user.id)
    if session.is_active and (mode is None or session.mode is mode):
        return session
    await safe_edit_text(query, "\u23f9 No active session.", reply_markup=_NO_SESSION_MARKUP)
    return None


# ── Session commands ──────────────────────────────────────────

async def flip(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    session = await _active_session(query, context, StudyMode.FLASHCARD)
    if session is None:
        return
    session.flip()
    await _show_current(query, context, session)


async def answer_gender(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    session = await _active_session(query, context, StudyMode.GENDER_QUIZ)
    if session is None:
        return
    session.answer_gender(query.data.split('_')[2])  # study_gender_<article>
    await _show_current(query, context, session)


async def reveal(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()
    session = await _active_session(query, context, StudyMode.GENDER_QUIZ)
    if session is None:
        return
    session.reveal()
    await _show_current(query, context, session)


async def grade(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    session = get_session(context, query.from_user.id)
    if not session.is_active:
        await query.answer()
        await safe_edit_text(query, "\u23f9 No active session.", reply_markup=_NO_SESSION_MARKUP)
        return

    try:
        graded = session.grade(query.data.split('_')[2])  # study_grade_<grade>
    except NotFound:
        logger.warning(f"User {query.from_user.id}: card {session.current.id} deleted mid-session")
        session.skip()
        await query.answer("That word was deleted, skipping it.")
        await _show_current(query, context, session)
        return

    if not graded:
        await query.answer("Pick der, die or das first.")
        return

    await query.answer()
    await _show_current(query, context, session)


async def stop(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Stop button or /stop: drop the in-memory session. Graded cards are already saved."""
    session = get_app(context).sessions.pop(update.effective_user.id, None)
    done = session.done if session is not None and session.is_active else 0

    text = f"\u23f9 Stopped after {plural(done, 'word')}"
    if update.callback_query:
        await update.callback_query.answer()
        await safe_edit_text(update.callback_query, text, reply_markup=_NO_SESSION_MARKUP)
    else:
        await safe_send_text(update.message, text, reply_markup=_NO_SESSION_MARKUP)
