"""
Bulk permission assignment against the shared SQLite file.

Each user's write runs on a worker thread with its own session, so these
tests exercise real cross-session visibility and write conflicts.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

from ad_access_core.db import PermissionAssignment
from ad_access_core.services.permission_store import PermissionStore

WORKSPACE = "workspace-bulk"


class TestBulkAssignment:
    """Test bulk grants end to end."""

    def test_many_users(self, db_session, permission_store):
        items = [
            {"user_id": f"member-{i}", "permission_ids": ["campaign:view", "publisher:view"]}
            for i in range(25)
        ]

        result = permission_store.bulk_assign(WORKSPACE, items, granted_by="admin")

        assert len(result.succeeded) == 25
        assert result.failed == []
        assert [o.user_id for o in result.outcomes] == [f"member-{i}" for i in range(25)]
        rows = db_session.query(PermissionAssignment).filter_by(workspace_id=WORKSPACE)
        assert rows.count() == 25

    def test_results_visible_to_caller_session(self, permission_store):
        permission_store.bulk_assign(
            WORKSPACE, [{"user_id": "member-1", "permission_ids": ["designer:upload"]}]
        )

        assert permission_store.get("member-1", WORKSPACE) == frozenset({"designer:upload"})

    def test_merges_with_existing_grants(self, permission_store):
        permission_store.assign("member-1", WORKSPACE, "campaign:create")

        permission_store.bulk_assign(
            WORKSPACE, [{"user_id": "member-1", "permission_ids": ["campaign:view"]}]
        )

        assert permission_store.get("member-1", WORKSPACE) == frozenset(
            {"campaign:create", "campaign:view"}
        )

    def test_partial_failure(self, db_session, permission_store):
        items = [
            {"user_id": "member-1", "permission_ids": ["campaign:view"]},
            {"user_id": "member-2", "permission_ids": ["campaign:teleport"]},
            {"user_id": "member-3", "permission_ids": ["designer:view"]},
        ]

        result = permission_store.bulk_assign(WORKSPACE, items)

        assert result.succeeded == ["member-1", "member-3"]
        assert result.failed == ["member-2"]
        assert result.outcome_for("member-2").error_code == "2000"
        assert permission_store.get("member-2", WORKSPACE) == frozenset()

    def test_concurrent_bulk_runs_union_their_grants(self, db_manager, permission_store):
        users = [f"member-{i}" for i in range(6)]
        barrier = threading.Barrier(2)

        def run(permission_id):
            session = db_manager.new_session()
            try:
                store = PermissionStore(session, session_factory=db_manager.new_session)
                barrier.wait(5)
                return store.bulk_assign(
                    WORKSPACE, [{"user_id": u, "permission_ids": [permission_id]} for u in users]
                )
            finally:
                session.close()

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(pool.map(run, ["campaign:view", "campaign:approve"]))

        assert all(r.failed == [] for r in results)
        for user_id in users:
            assert permission_store.get(user_id, WORKSPACE) == frozenset(
                {"campaign:view", "campaign:approve"}
            )

    def test_history_records_each_grant(self, permission_store):
        permission_store.bulk_assign(
            WORKSPACE,
            [{"user_id": "member-1", "permission_ids": ["campaign:view", "campaign:create"]}],
            granted_by="admin",
        )

        assignment = permission_store.get_assignment("member-1", WORKSPACE)

        assert {(h.permission_id, h.change.value, h.by) for h in assignment.grant_history} == {
            ("campaign:create", "granted", "admin"),
            ("campaign:view", "granted", "admin"),
        }
