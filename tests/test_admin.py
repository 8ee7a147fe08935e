import json
import uuid

import pytest


@pytest.fixture()
def admin(make_user):
    from app.models.user import UserRole
    return make_user("admin", role=UserRole.ADMIN, full_name="Admin Boss")


def _audit_entries(db_session, action, target_id=None):
    from app.models.audit_log import AuditLog

    db_session.expire_all()
    query = db_session.query(AuditLog).filter(AuditLog.action == action)
    if target_id is not None:
        query = query.filter(AuditLog.target_id == target_id)
    return query.all()


# ── Access control ───────────────────────────────────────────

def test_admin_routes_require_admin(client, make_user, auth_headers, admin):
    user = make_user("regular")
    assert client.get("/api/admin/users", headers=auth_headers(user)).status_code == 403
    assert client.get("/api/admin/analytics", headers=auth_headers(user)).status_code == 403
    assert client.post("/api/admin/storage/recompute", headers=auth_headers(user)).status_code == 403
    assert client.get("/api/admin/users").status_code == 401
    assert client.get("/api/admin/users", headers=auth_headers(admin)).status_code == 200


# ── User list ────────────────────────────────────────────────

class TestListUsers:
    def test_list_includes_counts_and_total(self, client, admin, make_user, make_document, auth_headers):
        user = make_user("counted")
        make_document(user)
        make_document(user)

        resp = client.get("/api/admin/users", headers=auth_headers(admin), params={"search": user.email})
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        assert data["users"][0]["id"] == user.id
        assert data["users"][0]["documentCount"] == 2
        assert data["users"][0]["documentsUsed"] == 2

    def test_search_matches_name_case_insensitively(self, client, admin, make_user, auth_headers):
        token = uuid.uuid4().hex[:10]
        user = make_user("named", full_name=f"Zed {token}")
        resp = client.get("/api/admin/users", headers=auth_headers(admin), params={"search": token.upper()})
        assert [u["id"] for u in resp.json()["users"]] == [user.id]

    def test_search_wildcards_are_literal(self, client, admin, auth_headers):
        resp = client.get("/api/admin/users", headers=auth_headers(admin), params={"search": "%"})
        assert resp.status_code == 200
        assert resp.json()["total"] == 0

    def test_filter_by_role_plan_and_status(self, client, admin, make_user, auth_headers):
        from app.models.user import UserPlan

        token = uuid.uuid4().hex[:8]
        premium = make_user(f"p{token}", plan=UserPlan.PREMIUM)
        banned = make_user(f"b{token}", banned=True)
        headers = auth_headers(admin)

        by_plan = client.get("/api/admin/users", headers=headers, params={"plan": "premium", "search": token})
        assert [u["id"] for u in by_plan.json()["users"]] == [premium.id]

        by_status = client.get("/api/admin/users", headers=headers, params={"status": "banned", "search": token})
        assert [u["id"] for u in by_status.json()["users"]] == [banned.id]

        active = client.get("/api/admin/users", headers=headers, params={"status": "active", "search": token})
        assert [u["id"] for u in active.json()["users"]] == [premium.id]

        admins = client.get("/api/admin/users", headers=headers, params={"role": "admin"})
        assert all(u["role"] == "admin" for u in admins.json()["users"])
        assert admin.id in [u["id"] for u in admins.json()["users"]]

    def test_pagination_bounds(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        assert client.get("/api/admin/users", headers=headers, params={"limit": 201}).status_code == 422
        assert client.get("/api/admin/users", headers=headers, params={"status": "deleted"}).status_code == 422
        resp = client.get("/api/admin/users", headers=headers, params={"limit": 1, "offset": 0})
        assert len(resp.json()["users"]) == 1

    def test_listing_is_audited(self, client, db_session, admin, auth_headers):
        client.get("/api/admin/users", headers=auth_headers(admin))
        entries = [e for e in _audit_entries(db_session, "LIST_USERS") if e.user_id == admin.id]
        assert entries
        assert entries[-1].ip_address


# ── User management ──────────────────────────────────────────

class TestManageUsers:
    def test_create_user_without_password(self, client, db_session, admin, auth_headers):
        email = f"created-{uuid.uuid4().hex[:8]}@test.com"
        resp = client.post("/api/admin/users", headers=auth_headers(admin), json={
            "email": email, "fullName": "Created User", "plan": "premium", "monthlyLimit": 20,
        })
        assert resp.status_code == 201, resp.text
        user = resp.json()["user"]
        assert user["plan"] == "premium"
        assert user["monthlyLimit"] == 20

        login = client.post("/api/auth/login", data={"username": email, "password": "anything"})
        assert login.status_code == 401
        assert _audit_entries(db_session, "CREATE_USER", user["id"])

    def test_create_duplicate_email(self, client, admin, make_user, auth_headers):
        existing = make_user("taken")
        resp = client.post("/api/admin/users", headers=auth_headers(admin), json={
            "email": existing.email, "fullName": "Dup",
        })
        assert resp.status_code == 400

    def test_get_user_with_stats(self, client, db_session, admin, make_user, make_document, auth_headers):
        user = make_user("detail")
        make_document(user)

        resp = client.get(f"/api/admin/users/{user.id}", headers=auth_headers(admin))
        assert resp.status_code == 200
        data = resp.json()
        assert data["user"]["email"] == user.email
        assert data["stats"] == {"documents": 1, "examAttempts": 0, "flashcardProgress": 0}
        assert _audit_entries(db_session, "VIEW_USER", user.id)

    def test_get_missing_user(self, client, admin, auth_headers):
        resp = client.get("/api/admin/users/999999", headers=auth_headers(admin))
        assert resp.status_code == 404
        assert resp.json()["error"] == "User not found"

    def test_role_change_audited_as_set_role(self, client, db_session, admin, make_user, auth_headers):
        user = make_user("promote")
        resp = client.patch(f"/api/admin/users/{user.id}", headers=auth_headers(admin), json={"role": "admin"})
        assert resp.status_code == 200
        assert resp.json()["user"]["role"] == "admin"

        entries = _audit_entries(db_session, "SET_ROLE", user.id)
        assert len(entries) == 1
        details = json.loads(entries[0].details)
        assert details["after"] == {"role": "admin"}
        assert details["before"] == {"role": "user"}
        assert not _audit_entries(db_session, "UPDATE_USER", user.id)

    def test_plan_and_limit_change_audited_as_update(self, client, db_session, admin, make_user, auth_headers):
        user = make_user("upgrade")
        resp = client.patch(f"/api/admin/users/{user.id}", headers=auth_headers(admin), json={
            "plan": "premium", "monthlyLimit": 150, "fullName": "Upgraded",
        })
        assert resp.status_code == 200
        body = resp.json()["user"]
        assert body["plan"] == "premium"
        assert body["monthlyLimit"] == 150
        assert body["fullName"] == "Upgraded"
        assert _audit_entries(db_session, "UPDATE_USER", user.id)
        assert not _audit_entries(db_session, "SET_ROLE", user.id)

    def test_invalid_updates(self, client, admin, make_user, auth_headers):
        user = make_user("invalid")
        headers = auth_headers(admin)
        assert client.patch(f"/api/admin/users/{user.id}", headers=headers, json={"monthlyLimit": 0}).status_code == 422
        assert client.patch(f"/api/admin/users/{user.id}", headers=headers, json={}).status_code == 400
        assert client.patch(f"/api/admin/users/{admin.id}", headers=headers, json={"role": "user"}).status_code == 400

    def test_suspend_and_unsuspend(self, client, db_session, admin, make_user, auth_headers):
        user = make_user("suspect")
        admin_headers = auth_headers(admin)

        resp = client.post(f"/api/admin/users/{user.id}/suspend", headers=admin_headers, json={"reason": "abuse"})
        assert resp.status_code == 200
        assert resp.json()["user"]["banned"] is True
        assert resp.json()["user"]["banReason"] == "abuse"
        assert client.get("/api/users/me", headers=auth_headers(user)).status_code == 403
        assert _audit_entries(db_session, "BAN_USER", user.id)

        resp = client.post(f"/api/admin/users/{user.id}/unsuspend", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["user"]["banned"] is False
        assert client.get("/api/users/me", headers=auth_headers(user)).status_code == 200
        assert _audit_entries(db_session, "UNBAN_USER", user.id)

    def test_cannot_suspend_or_delete_self(self, client, admin, auth_headers):
        headers = auth_headers(admin)
        assert client.post(f"/api/admin/users/{admin.id}/suspend", headers=headers, json={}).status_code == 400
        assert client.delete(f"/api/admin/users/{admin.id}", headers=headers).status_code == 400

    def test_delete_user_cascades_documents(self, client, db_session, admin, make_user, make_document, auth_headers):
        from app.models.document import Document
        from app.models.user import User

        user = make_user("doomed")
        document = make_document(user)
        user_id, document_id = user.id, document.id

        resp = client.delete(f"/api/admin/users/{user_id}", headers=auth_headers(admin))
        assert resp.status_code == 200
        db_session.expire_all()
        assert db_session.query(User).filter(User.id == user_id).first() is None
        assert db_session.query(Document).filter(Document.id == document_id).first() is None
        assert _audit_entries(db_session, "DELETE_USER", user_id)


# ── Files ────────────────────────────────────────────────────

class TestUserFiles:
    def test_list_files(self, client, admin, make_user, make_document, auth_headers):
        user = make_user("files")
        document = make_document(user, original_name="chapter1.pdf", file_size=2048)

        resp = client.get(f"/api/admin/users/{user.id}/files", headers=auth_headers(admin))
        assert resp.status_code == 200
        files = resp.json()["documents"]
        assert files[0]["id"] == document.id
        assert files[0]["originalName"] == "chapter1.pdf"
        assert files[0]["fileSize"] == 2048

    def test_delete_file_floors_storage(self, client, db_session, admin, make_user, make_document, auth_headers):
        from app.models.user import User

        user = make_user("floor")
        document = make_document(user, file_size=1000)
        user.storage_used = 500
        db_session.commit()

        resp = client.delete(f"/api/admin/users/{user.id}/files/{document.id}", headers=auth_headers(admin))
        assert resp.status_code == 200
        db_session.expire_all()
        assert db_session.query(User).filter(User.id == user.id).first().storage_used == 0

        entries = _audit_entries(db_session, "DELETE_USER_FILE", user.id)
        assert json.loads(entries[0].details)["file_size"] == 1000

    def test_delete_file_of_other_user_is_404(self, client, admin, make_user, make_document, auth_headers):
        owner = make_user("realowner")
        other = make_user("notowner")
        document = make_document(owner)

        resp = client.delete(f"/api/admin/users/{other.id}/files/{document.id}", headers=auth_headers(admin))
        assert resp.status_code == 404


# ── Analytics, storage, audit ────────────────────────────────

def test_analytics(client, db_session, admin, make_user, make_document, auth_headers):
    user = make_user("stats")
    make_document(user, file_size=777)

    resp = client.get("/api/admin/analytics", headers=auth_headers(admin))
    assert resp.status_code == 200
    data = resp.json()
    assert data["totals"]["users"] >= 2
    assert data["totals"]["documents"] >= 1
    assert data["totals"]["storageBytes"] >= 777
    active = data["activeUsers"]
    assert active["last24h"] >= 1
    assert active["last24h"] <= active["last7d"] <= active["last30d"]
    assert _audit_entries(db_session, "VIEW_ANALYTICS")


def test_storage_breakdown_and_recompute(client, db_session, admin, make_user, make_document, auth_headers):
    from app.models.user import User

    user = make_user("heavy")
    make_document(user, file_size=10**9)
    headers = auth_headers(admin)

    breakdown = client.get("/api/admin/storage", headers=headers)
    assert breakdown.status_code == 200
    top = breakdown.json()["users"][0]
    assert top["id"] == user.id
    assert top["storageUsed"] == 10**9
    assert top["documentCount"] == 1

    user.storage_used = 42
    db_session.commit()
    resp = client.post("/api/admin/storage/recompute", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert resp.json()["usersUpdated"] >= 2

    db_session.expire_all()
    assert db_session.query(User).filter(User.id == user.id).first().storage_used == 10**9
    assert _audit_entries(db_session, "RECOMPUTE_STORAGE")


def test_audit_log_listing_filters(client, admin, make_user, auth_headers):
    user = make_user("audited")
    headers = auth_headers(admin)
    client.post(f"/api/admin/users/{user.id}/suspend", headers=headers, json={"reason": "test"})

    resp = client.get("/api/admin/audit-logs", headers=headers, params={"action": "BAN_USER", "user_id": admin.id})
    assert resp.status_code == 200
    logs = resp.json()["logs"]
    assert resp.json()["total"] >= 1
    assert logs[0]["action"] == "BAN_USER"
    assert logs[0]["targetId"] == user.id
    assert logs[0]["userName"] == "Admin Boss"
    assert all(log["action"] == "BAN_USER" for log in logs)
