"""Tests for the notification queue migration."""

import importlib.util
from pathlib import Path
from unittest.mock import patch

MIGRATION = (
    Path(__file__).parent.parent
    / "alembic"
    / "versions"
    / "20261019_0001_001_notification_queue.py"
)


def load_migration():
    spec = importlib.util.spec_from_file_location("migration_001", MIGRATION)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


# ============================================================================
# Migration 001 Tests
# ============================================================================

class TestNotificationQueueMigration:
    """Tests for revision 001."""

    def test_upgrade_adds_claim_token(self):
        """The queue table carries the claim token column."""
        migration = load_migration()

        with patch.object(migration, "op") as mock_op:
            migration.upgrade()

        statements = " ".join(call.args[0] for call in mock_op.execute.call_args_list)
        assert "CREATE TABLE IF NOT EXISTS notification_queue" in statements
        assert "claim_token UUID" in statements

    def test_downgrade_keeps_history(self):
        """Downgrade drops the queue but leaves notification_history in place."""
        migration = load_migration()

        with patch.object(migration, "op") as mock_op:
            migration.downgrade()

        statements = [call.args[0] for call in mock_op.execute.call_args_list]
        assert statements == ["DROP TABLE IF EXISTS notification_queue CASCADE"]
