import html

from telegram import InlineKeyboardButton

from utils.models import TEXT_FIELDS, Card


def parse_card_text(content: str) -> dict[str, str]:
    """
    Turn a chat message into card fields.

    Either pipe separated on one line:
        the house | Haus | das | Häuser | Das Haus ist groß. | notes
    or one field per line in the same order. Missing trailing fields are ''.
    Validation happens in the store, not here.
    """
    text = (content or '').strip()

    if '|' in text:
        parts = [p.strip() for p in text.split('|', len(TEXT_FIELDS) - 1)]
    else:
        parts = [line.strip() for line in text.split('\n') if line.strip()]
        if len(parts) > len(TEXT_FIELDS):
            # extra lines belong to the notes
            parts = parts[:len(TEXT_FIELDS) - 1] + ['\n'.join(parts[len(TEXT_FIELDS) - 1:])]

    parts += [''] * (len(TEXT_FIELDS) - len(parts))
    return dict(zip(TEXT_FIELDS, parts))


def german_label(card: Card) -> str:
    """'das Haus' / 'Haus' (no article)."""
    return f"{card.article} {card.german}".strip()


SEARCH_FIELDS = ('english', 'german', 'article', 'example', 'notes')


def search_cards(cards: list[Card], text: str) -> list[Card]:
    """Cards whose english, german, article, example or notes contain `text`, ignoring case."""
    needle = (text or '').strip().casefold()
    if not needle:
        return list(cards)
    return [
        card for card in cards
        if any(needle in getattr(card, field).casefold() for field in SEARCH_FIELDS)
    ]


def card_details(fields: dict[str, str] | Card) -> str:
    """HTML block with every filled-in field, escaped."""
    if isinstance(fields, Card):
        fields = fields.text_fields()

    article = fields.get('article', '')
    german = f"{article} {fields.get('german', '')}".strip()
    lines = [
        f"\U0001f1ec\U0001f1e7 {html.escape(fields.get('english', ''))}",
        f"\U0001f1e9\U0001f1ea <b>{html.escape(german)}</b>",
    ]
    if fields.get('plural'):
        lines.append(f"Plural: {html.escape(fields['plural'])}")
    if fields.get('example'):
        lines.append(f"<i>{html.escape(fields['example'])}</i>")
    if fields.get('notes'):
        lines.append(f"\U0001f4dd {html.escape(fields['notes'])}")
    return '\n'.join(lines)


def truncate(text: str, max_len: int) -> str:
    return text if len(text) <= max_len else text[:max_len - 1] + '\u2026'


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def get_buttons(items: list[tuple[str, str]], prefix: str) -> list[list[InlineKeyboardButton]]:
    """One button per (id, label) pair, callback data '<prefix>_<id>'."""
    buttons: list[list[InlineKeyboardButton]] = []
    for item_id, label in items:
        buttons.append([
            InlineKeyboardButton(label, callback_data=f"{prefix}_{item_id}")
        ])
    return buttons
