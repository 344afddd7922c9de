"""CredPoints schema: users, classes, work requests, ledger, activity, notifications.

Revision ID: 001_credpoints_tables
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_credpoints_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users & classes ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            email VARCHAR(320) UNIQUE,
            role VARCHAR(16) NOT NULL,
            cred_points INTEGER NOT NULL DEFAULT 0,
            current_class_id UUID,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_users_role CHECK (role IN ('staff', 'advisor'))
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS classes (
            id UUID PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            join_code VARCHAR(16) UNIQUE NOT NULL,
            advisor_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)

    # --- Work requests ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS work_requests (
            id UUID PRIMARY KEY,
            staff_id UUID NOT NULL REFERENCES users(id),
            advisor_id UUID NOT NULL REFERENCES users(id),
            class_id UUID REFERENCES classes(id) ON DELETE SET NULL,
            work_description TEXT NOT NULL,
            requested_points INTEGER NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            response_message TEXT,
            approved_points INTEGER,
            revision INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            responded_at TIMESTAMPTZ,
            CONSTRAINT ck_work_requests_points_positive CHECK (requested_points > 0),
            CONSTRAINT ck_work_requests_status
                CHECK (status IN ('pending', 'approved', 'rejected', 'correction')),
            CONSTRAINT ck_work_requests_approved_points
                CHECK ((status = 'approved') = (approved_points IS NOT NULL)),
            CONSTRAINT ck_work_requests_responded_at
                CHECK ((status = 'pending') = (responded_at IS NULL))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_work_requests_advisor_status
        ON work_requests(advisor_id, status)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_work_requests_staff_created
        ON work_requests(staff_id, created_at DESC)
    """)

    # --- Point ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS point_ledger (
            id BIGSERIAL PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            amount INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128),
            description VARCHAR(256),
            idempotency_key VARCHAR(256) UNIQUE,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_point_ledger_user_created
        ON point_ledger(user_id, created_at DESC)
    """)

    # --- Activity log ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS activities (
            id BIGSERIAL PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            activity_type VARCHAR(32) NOT NULL,
            description TEXT NOT NULL,
            points INTEGER NOT NULL DEFAULT 0,
            related_request_id UUID,
            step_key VARCHAR(128) UNIQUE,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            CONSTRAINT ck_activities_points_magnitude CHECK (points >= 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_activities_user_created
        ON activities(user_id, created_at DESC)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_activities_request
        ON activities(related_request_id)
    """)

    # --- Notifications ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id BIGSERIAL PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            message TEXT NOT NULL,
            read BOOLEAN NOT NULL DEFAULT false,
            related_request_id UUID,
            request_data JSONB,
            dedupe_key VARCHAR(128) UNIQUE,
            created_at TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_notifications_user_read
        ON notifications(user_id, read)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_notifications_request
        ON notifications(related_request_id)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications")
    op.execute("DROP TABLE IF EXISTS activities")
    op.execute("DROP TABLE IF EXISTS point_ledger")
    op.execute("DROP TABLE IF EXISTS work_requests")
    op.execute("DROP TABLE IF EXISTS classes")
    op.execute("DROP TABLE IF EXISTS users")
