"""Documents table with change notifications.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from alembic import op


# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # One row per document; collection is the full path (e.g. users/u1/notifications)
    op.execute("""
        CREATE TABLE documents (
            collection TEXT NOT NULL,
            id TEXT NOT NULL,
            data JSONB NOT NULL DEFAULT '{}'::jsonb,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            PRIMARY KEY (collection, id)
        );
    """)

    op.execute("""
        CREATE INDEX idx_documents_collection ON documents(collection);
    """)

    # Watchers re-read a collection when its name arrives on this channel
    op.execute("""
        CREATE FUNCTION notify_documents_changed() RETURNS trigger AS $$
        BEGIN
            IF TG_OP = 'DELETE' THEN
                PERFORM pg_notify('documents_changed', OLD.collection);
                RETURN OLD;
            END IF;
            PERFORM pg_notify('documents_changed', NEW.collection);
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)

    op.execute("""
        CREATE TRIGGER documents_changed
        AFTER INSERT OR UPDATE OR DELETE ON documents
        FOR EACH ROW EXECUTE FUNCTION notify_documents_changed();
    """)


def downgrade():
    op.execute("DROP TRIGGER IF EXISTS documents_changed ON documents;")
    op.execute("DROP FUNCTION IF EXISTS notify_documents_changed();")
    op.execute("DROP TABLE IF EXISTS documents;")
