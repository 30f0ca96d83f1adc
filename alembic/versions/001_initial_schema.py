"""001 – Initial schema: profiles, leave types, applications, notifications, audit.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-03-02 10:00:00.000000+05:30
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ENUM_TYPES: list[tuple[str, list[str]]] = [
    ("user_role", ["user", "admin"]),
    ("leave_status", ["pending", "approved", "rejected", "cancelled"]),
    ("duration_type", ["days", "hours"]),
    ("leave_policy", ["fixed", "accrual_with_carry_forward", "annual_pool"]),
    ("half_day_period", ["morning", "afternoon"]),
    ("notification_channel", ["email", "slack", "web"]),
    ("delivery_status", ["sent", "failed", "skipped"]),
    (
        "notification_type",
        ["info", "leave_submitted", "leave_approved", "leave_rejected", "leave_reverted"],
    ),
]


def _create_enum(name: str, values: list[str]) -> None:
    vals = ", ".join(f"'{v}'" for v in values)
    op.execute(f"CREATE TYPE {name} AS ENUM ({vals})")


def _drop_enum(name: str) -> None:
    op.execute(f"DROP TYPE IF EXISTS {name}")


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    for name, values in ENUM_TYPES:
        _create_enum(name, values)

    # ── 1. profiles ───────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE profiles (
            id          VARCHAR(64) PRIMARY KEY,
            name        VARCHAR(200),
            email       VARCHAR(255) NOT NULL UNIQUE,
            role        user_role NOT NULL DEFAULT 'user',
            is_active   BOOLEAN DEFAULT TRUE,
            created_at  TIMESTAMPTZ DEFAULT NOW(),
            updated_at  TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 2. user_slack_integrations ────────────────────────────────────────
    op.execute("""
        CREATE TABLE user_slack_integrations (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id        VARCHAR(64) NOT NULL UNIQUE REFERENCES profiles(id) ON DELETE CASCADE,
            slack_user_id  VARCHAR(32) NOT NULL,
            slack_team_id  VARCHAR(32) NOT NULL,
            created_at     TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 3. leave_types ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                     UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            label                  VARCHAR(100) NOT NULL UNIQUE,
            color                  VARCHAR(20),
            duration_type          duration_type NOT NULL DEFAULT 'days',
            policy                 leave_policy NOT NULL DEFAULT 'fixed',
            allowance              NUMERIC(5,1) DEFAULT 0,
            carry_forward_limit    NUMERIC(5,1) DEFAULT 0,
            primary_leave_type_id  UUID REFERENCES leave_types(id),
            requires_approval      BOOLEAN DEFAULT TRUE,
            is_active              BOOLEAN DEFAULT TRUE,
            created_at             TIMESTAMPTZ DEFAULT NOW(),
            updated_at             TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 4. leave_applied_users ────────────────────────────────────────────
    op.execute("""
        CREATE TABLE leave_applied_users (
            id                UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            user_id           VARCHAR(64) NOT NULL REFERENCES profiles(id),
            leave_type_id     UUID NOT NULL REFERENCES leave_types(id),
            start_date        DATE NOT NULL,
            end_date          DATE NOT NULL,
            status            leave_status NOT NULL DEFAULT 'pending',
            is_half_day       BOOLEAN DEFAULT FALSE,
            half_day_period   half_day_period,
            leave_time_start  TIME,
            leave_time_end    TIME,
            hours_requested   NUMERIC(4,1),
            actual_days_used  NUMERIC(5,1),
            reason            TEXT,
            holiday_name      VARCHAR(200),
            meeting_details   TEXT,
            applied_at        TIMESTAMPTZ DEFAULT NOW(),
            approved_by       VARCHAR(64) REFERENCES profiles(id),
            approved_at       TIMESTAMPTZ,
            CHECK (end_date >= start_date)
        )
    """)
    op.execute("""
        CREATE INDEX ix_leave_applied_users_user_dates
            ON leave_applied_users(user_id, start_date, end_date)
    """)
    op.execute("""
        CREATE INDEX ix_leave_applied_users_active
            ON leave_applied_users(user_id, leave_type_id, start_date)
            WHERE status IN ('pending', 'approved')
    """)

    # ── 5. notifications ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notifications (
            id            UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            recipient_id  VARCHAR(64) NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            type          notification_type DEFAULT 'info',
            title         VARCHAR(200) NOT NULL,
            message       TEXT NOT NULL,
            action_url    VARCHAR(500),
            entity_type   VARCHAR(50),
            entity_id     UUID,
            is_read       BOOLEAN DEFAULT FALSE,
            read_at       TIMESTAMPTZ,
            created_at    TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX idx_notifications_unread
            ON notifications(recipient_id, created_at DESC)
            WHERE is_read = FALSE
    """)

    # ── 6. notification_logs ──────────────────────────────────────────────
    op.execute("""
        CREATE TABLE notification_logs (
            id                    UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            leave_application_id  UUID REFERENCES leave_applied_users(id) ON DELETE SET NULL,
            recipient_id          VARCHAR(64) REFERENCES profiles(id) ON DELETE SET NULL,
            channel               notification_channel NOT NULL,
            destination           VARCHAR(255),
            status                delivery_status NOT NULL,
            error                 TEXT,
            created_at            TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX ix_notification_logs_application
            ON notification_logs(leave_application_id)
    """)

    # ── 7. slack_tokens ───────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE slack_tokens (
            id             UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            access_token   TEXT NOT NULL,
            refresh_token  TEXT,
            expires_in     INTEGER,
            created_at     TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # ── 8. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id           UUID PRIMARY KEY DEFAULT uuid_generate_v4(),
            actor_id     VARCHAR(64) REFERENCES profiles(id),
            action       VARCHAR(50) NOT NULL,
            entity_type  VARCHAR(50) NOT NULL,
            entity_id    UUID NOT NULL,
            old_values   JSONB,
            new_values   JSONB,
            created_at   TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail(actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity   ON audit_trail(entity_type, entity_id)")

    # ── Seed: default leave types ─────────────────────────────────────────
    op.execute("""
        INSERT INTO leave_types (label, color, duration_type, policy, allowance, carry_forward_limit)
        VALUES
            ('Work From Home', '#4f46e5', 'days',  'fixed',                      2,  0),
            ('Leave',          '#16a34a', 'days',  'accrual_with_carry_forward', 1.5, 1.5),
            ('Short Leave',    '#f59e0b', 'hours', 'fixed',                      4,  0)
    """)
    op.execute("""
        INSERT INTO leave_types (label, color, duration_type, policy, allowance, primary_leave_type_id)
        SELECT 'Extra Work From Home', '#a855f7', 'days', 'annual_pool', 12, id
          FROM leave_types WHERE label = 'Work From Home'
    """)


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    tables = [
        "audit_trail",
        "slack_tokens",
        "notification_logs",
        "notifications",
        "leave_applied_users",
        "leave_types",
        "user_slack_integrations",
        "profiles",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")

    for name, _ in reversed(ENUM_TYPES):
        _drop_enum(name)
