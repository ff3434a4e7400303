"""Database schema for Reco's durable store."""

# SQLite schema
SCHEMA_SQL = """
-- Users: one row per phone-like user key
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    user_key TEXT NOT NULL UNIQUE,
    credits_minor INTEGER NOT NULL DEFAULT 0 CHECK(credits_minor >= 0),
    message_count INTEGER NOT NULL DEFAULT 0 CHECK(message_count >= 0),
    lang TEXT NOT NULL DEFAULT 'es',
    is_blocked INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- Append-only credit ledger; SUM(delta_minor) per user equals users.credits_minor
CREATE TABLE IF NOT EXISTS credit_ledger (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    delta_minor INTEGER NOT NULL,
    reason TEXT NOT NULL,
    ref_id TEXT,
    timestamp TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- Advisory mirror of the in-process conversation memory (never read back)
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_key TEXT NOT NULL,
    started_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    last_activity TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL REFERENCES conversations(id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK(role IN ('user', 'assistant')),
    content TEXT NOT NULL,
    timestamp TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- Schema version for migrations
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_ledger_user ON credit_ledger(user_id);
CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_key);
CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id);

INSERT OR IGNORE INTO schema_version (version) VALUES (1);
"""

CURRENT_SCHEMA_VERSION = 1
