"""COWork schema: profiles, projects, memberships, checkpoints, friends,
achievements, notifications and push delivery.

Revision ID: 001_cowork_schema
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_cowork_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Profiles (id == auth provider user id) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS profiles (
            id UUID PRIMARY KEY,
            username VARCHAR(64) UNIQUE,
            display_name VARCHAR(128),
            avatar_url TEXT,
            color_hex VARCHAR(7) NOT NULL DEFAULT '#6366f1',
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Projects & memberships ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS projects (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            owner_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            title VARCHAR(128) NOT NULL,
            description TEXT,
            category VARCHAR(64),
            color VARCHAR(7),
            max_users INTEGER NOT NULL DEFAULT 10,
            is_public BOOLEAN NOT NULL DEFAULT false,
            status VARCHAR(16) NOT NULL DEFAULT 'active'
                CHECK (status IN ('active', 'completed', 'archived')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_projects_owner ON projects(owner_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS project_members (
            project_id UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            role VARCHAR(16) NOT NULL DEFAULT 'member'
                CHECK (role IN ('admin', 'manager', 'member')),
            status VARCHAR(16) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'active', 'rejected', 'left')),
            member_color VARCHAR(7),
            invited_by UUID REFERENCES profiles(id) ON DELETE SET NULL,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            PRIMARY KEY (project_id, user_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_project_members_user_status
        ON project_members(user_id, status)
    """)

    # --- Checkpoints & evidence ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS checkpoints (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            project_id UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            title VARCHAR(256) NOT NULL,
            "order" INTEGER NOT NULL DEFAULT 0,
            is_completed BOOLEAN NOT NULL DEFAULT false,
            completed_by UUID REFERENCES profiles(id) ON DELETE SET NULL,
            completed_at TIMESTAMPTZ,
            rating INTEGER CHECK (rating BETWEEN 1 AND 10),
            admin_comment TEXT,
            rejection_reason TEXT,
            image_url TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_checkpoints_project ON checkpoints(project_id)")
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_checkpoints_rejected
        ON checkpoints(project_id)
        WHERE rejection_reason IS NOT NULL AND is_completed = false
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS evidences (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            checkpoint_id UUID NOT NULL REFERENCES checkpoints(id) ON DELETE CASCADE,
            user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            note TEXT,
            image_url TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Friends ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS friend_requests (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            sender_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            receiver_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            status VARCHAR(16) NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'accepted', 'rejected')),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CHECK (sender_id <> receiver_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_friend_requests_receiver
        ON friend_requests(receiver_id, status)
    """)
    # One open (pending or accepted) request per unordered pair
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS idx_friend_requests_open_pair
        ON friend_requests(LEAST(sender_id, receiver_id), GREATEST(sender_id, receiver_id))
        WHERE status IN ('pending', 'accepted')
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name VARCHAR(128) UNIQUE NOT NULL,
            description TEXT,
            icon VARCHAR(64),
            tier VARCHAR(16) NOT NULL DEFAULT 'bronze'
                CHECK (tier IN ('bronze', 'silver', 'gold', 'platinum')),
            requirement_type VARCHAR(64),
            requirement_value INTEGER,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_achievements_requirement_type
        ON achievements(requirement_type)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id SERIAL PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            achievement_id UUID NOT NULL REFERENCES achievements(id) ON DELETE CASCADE,
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_user_achievements_user_achievement UNIQUE (user_id, achievement_id)
        )
    """)

    # --- Notifications & push ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS notifications (
            id SERIAL PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            title VARCHAR(256) NOT NULL,
            message TEXT,
            url VARCHAR(256),
            is_read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notifications_user_unread
        ON notifications(user_id, created_at DESC)
        WHERE is_read = false
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS push_subscriptions (
            id SERIAL PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            endpoint TEXT UNIQUE NOT NULL,
            p256dh_key TEXT NOT NULL,
            auth_key TEXT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_push_subscriptions_user ON push_subscriptions(user_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS notification_queue (
            id SERIAL PRIMARY KEY,
            user_id UUID NOT NULL REFERENCES profiles(id) ON DELETE CASCADE,
            title VARCHAR(256) NOT NULL,
            body TEXT NOT NULL,
            data JSONB NOT NULL DEFAULT '{}'::jsonb,
            sent BOOLEAN NOT NULL DEFAULT false,
            sent_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_notification_queue_unsent
        ON notification_queue(created_at)
        WHERE sent = false
    """)


def downgrade() -> None:
    for table in (
        "notification_queue",
        "push_subscriptions",
        "notifications",
        "user_achievements",
        "achievements",
        "friend_requests",
        "evidences",
        "checkpoints",
        "project_members",
        "projects",
        "profiles",
    ):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
