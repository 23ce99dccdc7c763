from enum import auto, IntEnum
from telegram import InlineKeyboardButton

DECK_NAME_MAX = 50

# Deck and card ids are uuid4 hex
ID_PATTERN = r'[0-9a-f]{32}'

# Session sizes offered in the study menu (clamped to MIN_GOAL..MAX_GOAL)
GOAL_CHOICES = (5, 10, 20, 50)

FRONT_SETTING = 'front'
FRONT_SIDES = ('english', 'german')


class DeckState(IntEnum):
    CREATING_DECK = auto()
    RENAME_DECK = auto()
    SEARCH_DECK = auto()


class CardState(IntEnum):
    AWAITING_CONTENT = auto()
    CONFIRMATION_PREVIEW = auto()
    EDIT_CARD_CONTENT = auto()
    EDIT_CARD_PREVIEW = auto()


PREVIEW_BUTTONS = [
    [InlineKeyboardButton("\u2705 Save", callback_data='save_card')],
    [
        InlineKeyboardButton("\u270f\ufe0f Edit", callback_data='edit_card'),
        InlineKeyboardButton("\u2716 Cancel", callback_data='cancel'),
    ],
]

MENU_BUTTON = InlineKeyboardButton('\U0001f3e0 Menu', callback_data='main_menu')
