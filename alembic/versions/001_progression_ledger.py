"""Progression ledger tables.

Creates user_economy, xp_ledger, missions, user_mission_progress,
achievements, user_achievements, user_keys, items, user_inventory,
trade_up_contracts, bets and notifications.

Revision ID: 001_progression_ledger
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_progression_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Economy ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_economy (
            user_id BIGINT PRIMARY KEY,
            coins BIGINT NOT NULL DEFAULT 0,
            gems BIGINT NOT NULL DEFAULT 0,
            xp BIGINT NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            login_streak INTEGER NOT NULL DEFAULT 0,
            last_login_date DATE,
            last_daily_claim DATE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT user_economy_coins_non_negative CHECK (coins >= 0),
            CONSTRAINT user_economy_gems_non_negative CHECK (gems >= 0),
            CONSTRAINT user_economy_xp_non_negative CHECK (xp >= 0)
        )
    """)

    # --- XP Ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            amount BIGINT NOT NULL,
            source VARCHAR(64) NOT NULL,
            description VARCHAR(256) NOT NULL DEFAULT '',
            metadata JSONB NOT NULL DEFAULT '{}',
            idempotency_key VARCHAR(256) UNIQUE,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_xp_ledger_user_id ON xp_ledger(user_id)")

    # --- Missions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS missions (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            type VARCHAR(16) NOT NULL,
            requirement_type VARCHAR(64) NOT NULL,
            requirement_value INTEGER NOT NULL,
            xp_reward INTEGER NOT NULL DEFAULT 0,
            coin_reward INTEGER NOT NULL DEFAULT 0,
            gem_reward INTEGER NOT NULL DEFAULT 0,
            repeatable BOOLEAN NOT NULL DEFAULT true,
            is_active BOOLEAN NOT NULL DEFAULT true,
            sort_order INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT missions_requirement_positive CHECK (requirement_value > 0),
            CONSTRAINT missions_type_valid CHECK (type IN ('daily', 'weekly', 'special', 'story'))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_missions_requirement_type
        ON missions(requirement_type)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_mission_progress (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            mission_id INTEGER NOT NULL REFERENCES missions(id) ON DELETE CASCADE,
            progress BIGINT NOT NULL DEFAULT 0,
            completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT user_mission_progress_user_id_mission_id_key UNIQUE (user_id, mission_id),
            CONSTRAINT user_mission_progress_non_negative CHECK (progress >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_mission_progress_user_id
        ON user_mission_progress(user_id)
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            category VARCHAR(32) NOT NULL,
            requirement_type VARCHAR(64) NOT NULL,
            requirement_value DOUBLE PRECISION NOT NULL,
            xp_reward INTEGER NOT NULL DEFAULT 0,
            coin_reward INTEGER NOT NULL DEFAULT 0,
            gem_reward INTEGER NOT NULL DEFAULT 0,
            rarity VARCHAR(16) NOT NULL DEFAULT 'common',
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_achievements_category ON achievements(category)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            achievement_id INTEGER NOT NULL REFERENCES achievements(id) ON DELETE CASCADE,
            unlocked_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT user_achievements_user_id_achievement_id_key UNIQUE (user_id, achievement_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_achievements_user_id ON user_achievements(user_id)")

    # --- Crate Keys ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_keys (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            crate_id INTEGER NOT NULL,
            keys_count INTEGER NOT NULL DEFAULT 0,
            acquired_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT user_keys_user_id_crate_id_key UNIQUE (user_id, crate_id),
            CONSTRAINT user_keys_non_negative CHECK (keys_count >= 0)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_keys_user_id ON user_keys(user_id)")

    # --- Items & Inventory ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS items (
            id SERIAL PRIMARY KEY,
            name VARCHAR(128) UNIQUE NOT NULL,
            type VARCHAR(32) NOT NULL DEFAULT 'weapon',
            rarity VARCHAR(16) NOT NULL,
            coin_price INTEGER NOT NULL DEFAULT 0,
            image_url VARCHAR(256),
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_items_rarity_active ON items(rarity, is_active)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_inventory (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            item_id INTEGER REFERENCES items(id),
            item_name VARCHAR(128) NOT NULL,
            rarity VARCHAR(16) NOT NULL,
            value INTEGER NOT NULL DEFAULT 0,
            equipped BOOLEAN NOT NULL DEFAULT false,
            obtained_from VARCHAR(32),
            acquired_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT user_inventory_value_non_negative CHECK (value >= 0)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_inventory_user_id ON user_inventory(user_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS trade_up_contracts (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            input_items JSONB NOT NULL,
            input_rarity VARCHAR(16) NOT NULL,
            output_rarity VARCHAR(16) NOT NULL,
            output_item_id BIGINT NOT NULL,
            output_value INTEGER NOT NULL,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_trade_up_contracts_user_id ON trade_up_contracts(user_id)")

    # --- Bets ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS bets (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            match_id VARCHAR(64),
            amount INTEGER NOT NULL DEFAULT 0,
            odds DOUBLE PRECISION NOT NULL DEFAULT 1.0,
            payout INTEGER NOT NULL DEFAULT 0,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            settled_at TIMESTAMPTZ
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_bets_user_created ON bets(user_id, created_at)")

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            message TEXT NOT NULL,
            data JSONB NOT NULL DEFAULT '{}',
            read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_notifications_user_read ON notifications(user_id, read)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications CASCADE")
    op.execute("DROP TABLE IF EXISTS bets CASCADE")
    op.execute("DROP TABLE IF EXISTS trade_up_contracts CASCADE")
    op.execute("DROP TABLE IF EXISTS user_inventory CASCADE")
    op.execute("DROP TABLE IF EXISTS items CASCADE")
    op.execute("DROP TABLE IF EXISTS user_keys CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS user_mission_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS missions CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_ledger CASCADE")
    op.execute("DROP TABLE IF EXISTS user_economy CASCADE")
