"""
tests/test_admin_routes.py -- Integration tests for /api/v1/admin/*.

Covers:
  - Admin login: allow-list, wrong password, non-admin account, disabled admin
  - Admin-only access and the allow-list check on every admin request
  - Admin CRUD with the self-deactivation and self-deletion guards
  - Admin home description and image
  - Force logout for admins and users; user activation toggle
"""

from __future__ import annotations

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, USER_EMAIL, USER_PASSWORD, Harness

from auth.models import ROLE_ADMIN, Credential
from auth.tokens import hash_password

OPS_EMAIL = "ops@example.com"


def _login(h: Harness, **body):
    return h.client.post("/api/v1/admin/login", json=body)


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


class TestAdminLogin:
    def test_login_with_username(self, harness: Harness) -> None:
        admin = harness.create_admin()
        resp = _login(harness, username=ADMIN_EMAIL, password=ADMIN_PASSWORD)
        assert resp.status_code == 200
        data = resp.json()
        assert data["admin"]["admin_id"] == admin.id
        assert data["admin"]["email_username"] == ADMIN_EMAIL
        assert "password_hash" not in data["admin"]
        assert resp.headers["cache-control"] == "no-store"

    def test_login_with_email_key(self, harness: Harness) -> None:
        harness.create_admin()
        assert _login(harness, email=ADMIN_EMAIL.upper(), password=ADMIN_PASSWORD).status_code == 200

    def test_missing_identity_is_422(self, harness: Harness) -> None:
        assert _login(harness, password=ADMIN_PASSWORD).status_code == 422

    def test_email_outside_allow_list_is_403(self, harness: Harness) -> None:
        resp = _login(harness, username="stranger@example.com", password="whatever")
        assert resp.status_code == 403

    def test_wrong_password_is_401(self, harness: Harness) -> None:
        harness.create_admin()
        assert _login(harness, username=ADMIN_EMAIL, password="wrong").status_code == 401

    def test_user_account_with_allow_listed_email_is_401(self, harness: Harness) -> None:
        harness.create_user(email=OPS_EMAIL)
        assert _login(harness, username=OPS_EMAIL, password=USER_PASSWORD).status_code == 401

    def test_disabled_admin_is_403(self, harness: Harness) -> None:
        harness.create_admin()
        harness.store.set_active(ADMIN_EMAIL, False)
        resp = _login(harness, username=ADMIN_EMAIL, password=ADMIN_PASSWORD)
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Admin account is disabled"

    def test_login_token_opens_admin_routes(self, harness: Harness) -> None:
        harness.create_admin()
        token = _login(harness, username=ADMIN_EMAIL, password=ADMIN_PASSWORD).json()["token"]
        resp = harness.client.get("/api/v1/admin", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------


class TestAdminAccess:
    def test_no_token_is_401(self, harness: Harness) -> None:
        assert harness.client.get("/api/v1/admin").status_code == 401

    def test_user_token_is_403(self, harness: Harness) -> None:
        user = harness.create_user()
        assert harness.client.get("/api/v1/admin", headers=harness.auth(user)).status_code == 403

    def test_admin_outside_allow_list_is_403(self, harness: Harness) -> None:
        rogue = harness.store.create(
            Credential(email="rogue@example.com", role=ROLE_ADMIN, password_hash=hash_password("roguepass"))
        )
        resp = harness.client.get("/api/v1/admin", headers=harness.auth(rogue))
        assert resp.status_code == 403
        assert resp.json()["error"]["message"] == "Not allowed"


# ---------------------------------------------------------------------------
# Admin accounts
# ---------------------------------------------------------------------------


class TestAdminAccounts:
    def test_list_and_get(self, harness: Harness) -> None:
        admin = harness.create_admin()
        ops = harness.create_admin(email=OPS_EMAIL, password="opspass123")
        headers = harness.auth(admin)
        listed = harness.client.get("/api/v1/admin", headers=headers).json()
        assert [a["email_username"] for a in listed] == [OPS_EMAIL, ADMIN_EMAIL]
        resp = harness.client.get(f"/api/v1/admin/{ops.id}", headers=headers)
        assert resp.status_code == 200
        assert resp.json()["token_version"] == 0

    def test_get_user_id_through_admin_route_is_404(self, harness: Harness) -> None:
        admin = harness.create_admin()
        user = harness.create_user()
        assert harness.client.get(f"/api/v1/admin/{user.id}", headers=harness.auth(admin)).status_code == 404

    def test_update_profile_and_dob(self, harness: Harness) -> None:
        admin = harness.create_admin()
        ops = harness.create_admin(email=OPS_EMAIL, password="opspass123")
        resp = harness.client.put(
            f"/api/v1/admin/{ops.id}",
            json={"first_name": "Meera", "dob": "1990-04-01", "mobile_number": "9000000010"},
            headers=harness.auth(admin),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["first_name"] == "Meera"
        assert data["dob"] == "1990-04-01"
        assert data["mobile_number"] == "9000000010"
        assert data["updated_at"]

    def test_email_must_stay_allow_listed(self, harness: Harness) -> None:
        admin = harness.create_admin()
        ops = harness.create_admin(email=OPS_EMAIL, password="opspass123")
        resp = harness.client.put(
            f"/api/v1/admin/{ops.id}", json={"email_username": "elsewhere@example.com"}, headers=harness.auth(admin)
        )
        assert resp.status_code == 403
        assert harness.store.get_by_id(ops.id).email == OPS_EMAIL

    def test_email_taken_by_other_account_conflicts(self, harness: Harness) -> None:
        admin = harness.create_admin()
        ops = harness.create_admin(email=OPS_EMAIL, password="opspass123")
        resp = harness.client.put(
            f"/api/v1/admin/{ops.id}", json={"email_username": ADMIN_EMAIL}, headers=harness.auth(admin)
        )
        assert resp.status_code == 409

    def test_password_update_revokes_sessions(self, harness: Harness) -> None:
        admin = harness.create_admin()
        ops = harness.create_admin(email=OPS_EMAIL, password="opspass123")
        ops_headers = harness.auth(ops)
        resp = harness.client.put(
            f"/api/v1/admin/{ops.id}", json={"password": "newopspass"}, headers=harness.auth(admin)
        )
        assert resp.status_code == 200
        assert resp.json()["token_version"] == 1
        assert harness.client.get("/api/v1/admin", headers=ops_headers).status_code == 401
        assert _login(harness, username=OPS_EMAIL, password="newopspass").status_code == 200

    def test_cannot_deactivate_self(self, harness: Harness) -> None:
        admin = harness.create_admin()
        resp = harness.client.put(f"/api/v1/admin/{admin.id}", json={"is_active": False}, headers=harness.auth(admin))
        assert resp.status_code == 403
        assert harness.store.get_by_id(admin.id).is_active is True

    def test_deactivated_admin_token_is_rejected(self, harness: Harness) -> None:
        admin = harness.create_admin()
        ops = harness.create_admin(email=OPS_EMAIL, password="opspass123")
        ops_headers = harness.auth(ops)
        resp = harness.client.put(f"/api/v1/admin/{ops.id}", json={"is_active": False}, headers=harness.auth(admin))
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False
        assert harness.client.get("/api/v1/admin", headers=ops_headers).status_code == 403

    def test_delete(self, harness: Harness) -> None:
        admin = harness.create_admin()
        ops = harness.create_admin(email=OPS_EMAIL, password="opspass123")
        headers = harness.auth(admin)
        assert harness.client.delete(f"/api/v1/admin/{ops.id}", headers=headers).status_code == 204
        assert harness.client.get(f"/api/v1/admin/{ops.id}", headers=headers).status_code == 404

    def test_cannot_delete_self(self, harness: Harness) -> None:
        admin = harness.create_admin()
        resp = harness.client.delete(f"/api/v1/admin/{admin.id}", headers=harness.auth(admin))
        assert resp.status_code == 403

    def test_update_home_shows_on_every_admin_read(self, harness: Harness) -> None:
        admin = harness.create_admin()
        ops = harness.create_admin(email=OPS_EMAIL, password="opspass123")
        headers = harness.auth(admin)
        resp = harness.client.patch(
            f"/api/v1/admin/{ops.id}/home",
            json={
                "admin_home_desc": "Welcome to the records desk",
                "admin_home_image": "https://cdn.example.com/desk.png",
            },
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["admin_home_desc"] == "Welcome to the records desk"
        fetched = harness.client.get(f"/api/v1/admin/{ops.id}", headers=headers).json()
        assert fetched["admin_home_image"] == "https://cdn.example.com/desk.png"
        listed = {a["admin_id"]: a for a in harness.client.get("/api/v1/admin", headers=headers).json()}
        assert listed[ops.id]["admin_home_desc"] == "Welcome to the records desk"
        assert listed[admin.id]["admin_home_desc"] is None

    def test_update_home_replaces_both_fields(self, harness: Harness) -> None:
        admin = harness.create_admin()
        headers = harness.auth(admin)
        harness.client.patch(
            f"/api/v1/admin/{admin.id}/home",
            json={"admin_home_desc": "old", "admin_home_image": "old.png"},
            headers=headers,
        )
        resp = harness.client.patch(f"/api/v1/admin/{admin.id}/home", json={"admin_home_desc": "new"}, headers=headers)
        assert resp.status_code == 200
        assert resp.json()["admin_home_desc"] == "new"
        assert resp.json()["admin_home_image"] is None

    def test_update_home_unknown_or_user_id_is_404(self, harness: Harness) -> None:
        admin = harness.create_admin()
        user = harness.create_user()
        headers = harness.auth(admin)
        body = {"admin_home_desc": "x"}
        assert harness.client.patch("/api/v1/admin/999/home", json=body, headers=headers).status_code == 404
        assert harness.client.patch(f"/api/v1/admin/{user.id}/home", json=body, headers=headers).status_code == 404

    def test_update_home_requires_admin(self, harness: Harness) -> None:
        admin = harness.create_admin()
        user = harness.create_user()
        resp = harness.client.patch(
            f"/api/v1/admin/{admin.id}/home", json={"admin_home_desc": "x"}, headers=harness.auth(user)
        )
        assert resp.status_code == 403

    def test_force_logout_admin(self, harness: Harness) -> None:
        admin = harness.create_admin()
        ops = harness.create_admin(email=OPS_EMAIL, password="opspass123")
        ops_headers = harness.auth(ops)
        resp = harness.client.patch(f"/api/v1/admin/{ops.id}/force-logout", headers=harness.auth(admin))
        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == ops.id
        assert data["email_address"] == OPS_EMAIL
        assert data["token_version"] == 1
        revoked = harness.client.get("/api/v1/admin", headers=ops_headers)
        assert revoked.status_code == 401
        assert revoked.json()["error"]["code"] == "session_revoked"

    def test_force_logout_unknown_admin_is_404(self, harness: Harness) -> None:
        admin = harness.create_admin()
        assert harness.client.patch("/api/v1/admin/999/force-logout", headers=harness.auth(admin)).status_code == 404


# ---------------------------------------------------------------------------
# User accounts
# ---------------------------------------------------------------------------


class TestAdminUserControls:
    def test_force_logout_user(self, harness: Harness) -> None:
        admin = harness.create_admin()
        user = harness.create_user()
        user_headers = harness.auth(user)
        resp = harness.client.patch(f"/api/v1/admin/users/{user.id}/force-logout", headers=harness.auth(admin))
        assert resp.status_code == 200
        assert resp.json()["token_version"] == 1
        assert harness.client.get("/api/v1/auth/me", headers=user_headers).status_code == 401
        # The user can log in again and gets a working session.
        token = harness.client.post(
            "/api/v1/auth/login", json={"username": USER_EMAIL, "password": USER_PASSWORD}
        ).json()["token"]
        assert harness.client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 200

    def test_force_logout_user_route_rejects_admin_ids(self, harness: Harness) -> None:
        admin = harness.create_admin()
        resp = harness.client.patch(f"/api/v1/admin/users/{admin.id}/force-logout", headers=harness.auth(admin))
        assert resp.status_code == 404

    def test_deactivate_and_reactivate_user(self, harness: Harness) -> None:
        admin = harness.create_admin()
        user = harness.create_user()
        user_headers = harness.auth(user)
        admin_headers = harness.auth(admin)

        resp = harness.client.patch(
            f"/api/v1/admin/users/{user.id}/active", json={"is_active": False}, headers=admin_headers
        )
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False
        assert harness.client.get("/api/v1/auth/me", headers=user_headers).status_code == 403
        login = harness.client.post("/api/v1/auth/login", json={"username": USER_EMAIL, "password": USER_PASSWORD})
        assert login.status_code == 403

        harness.client.patch(f"/api/v1/admin/users/{user.id}/active", json={"is_active": True}, headers=admin_headers)
        assert harness.client.get("/api/v1/auth/me", headers=user_headers).status_code == 200

    def test_active_toggle_requires_admin(self, harness: Harness) -> None:
        user = harness.create_user()
        resp = harness.client.patch(
            f"/api/v1/admin/users/{user.id}/active", json={"is_active": False}, headers=harness.auth(user)
        )
        assert resp.status_code == 403
