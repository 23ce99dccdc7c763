# Timestamps are stored as fixed-width UTC text (YYYY-MM-DD HH:MM:SS.ffffff)
# so that text order is time order.

# ======================= DECKS ==========================

deck_schema = '''
    CREATE TABLE IF NOT EXISTS decks (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
'''

# ======================= CARDS ==========================

card_schema = '''
    CREATE TABLE IF NOT EXISTS cards (
        id TEXT PRIMARY KEY,
        deck_id TEXT NOT NULL,

        -- Card content
        english TEXT NOT NULL,
        german TEXT NOT NULL,
        article TEXT NOT NULL DEFAULT '',
        plural TEXT NOT NULL DEFAULT '',
        example TEXT NOT NULL DEFAULT '',
        notes TEXT NOT NULL DEFAULT '',

        -- Review state
        due TEXT NOT NULL,
        interval_days REAL NOT NULL DEFAULT 0.0,
        ease REAL NOT NULL DEFAULT 2.3,
        reps INTEGER NOT NULL DEFAULT 0,
        lapses INTEGER NOT NULL DEFAULT 0,

        created_at TEXT NOT NULL,

        FOREIGN KEY (deck_id) REFERENCES decks(id) ON DELETE CASCADE
    )
'''

# ======================= SETTINGS =======================

settings_schema = '''
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
'''

# ======================= INDEXES ========================

index_schemas = (
    'CREATE INDEX IF NOT EXISTS idx_decks_name ON decks (name)',
    'CREATE INDEX IF NOT EXISTS idx_cards_deck ON cards (deck_id)',
    'CREATE INDEX IF NOT EXISTS idx_cards_due ON cards (due)',
)
