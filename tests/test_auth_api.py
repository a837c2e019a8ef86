from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from sitetrack.models.admin import Admin
from sitetrack.models.user_session import UserSession
from sitetrack.services.auth import AuthService, AuthenticationError

from conftest import ADMIN_PASSWORD, EMPLOYEE_PASSWORD, login


SIGNUP = {
    "firstName": "Grace",
    "lastName": "Hopper",
    "companyName": "Harbor Works",
    "email": "grace@example.com",
    "password": "harbor1",
}


def test_admin_signup_verify_and_activation_flow(client, db, make_admin):
    response = client.post("/api/admin/signup", json=SIGNUP)
    assert response.status_code == 201
    body = response.json()
    assert body["admin"]["email"] == "grace@example.com"
    assert body["admin"]["isVerified"] is False
    assert body["admin"]["isActive"] is False
    assert "verificationToken" not in body["admin"]

    credentials = {"email": "grace@example.com", "password": "harbor1"}

    response = client.post("/api/admin/login", json=credentials)
    assert response.status_code == 401
    assert response.json()["detail"].startswith("Email not verified")

    token = db.execute(
        select(Admin.verification_token).where(Admin.email == "grace@example.com")
    ).scalar_one()
    assert client.post("/api/admin/verify-email", json={"token": token}).status_code == 200
    # Tokens are single use
    assert client.post("/api/admin/verify-email", json={"token": token}).status_code == 400

    response = client.post("/api/admin/login", json=credentials)
    assert response.status_code == 401
    assert "pending activation" in response.json()["detail"]

    boss = make_admin(email="root@example.com", role=Admin.ROLE_SUPER_ADMIN)
    boss_headers = {"Authorization": f"Bearer {login(client, 'admin', boss.email, ADMIN_PASSWORD)}"}

    pending = client.get("/api/super-admin/pending-admins", headers=boss_headers).json()
    assert [a["email"] for a in pending] == ["grace@example.com"]

    response = client.put(
        "/api/super-admin/activate-admin",
        json={"adminId": pending[0]["id"], "isActive": True},
        headers=boss_headers,
    )
    assert response.status_code == 200
    assert response.json()["isActive"] is True

    response = client.post("/api/admin/login", json=credentials)
    assert response.status_code == 200
    assert response.json()["admin"]["companyName"] == "Harbor Works"
    assert len(response.json()["token"]) == 64


def test_signup_rejects_taken_email(client, admin, employee):
    response = client.post("/api/admin/signup", json={**SIGNUP, "email": admin.email})
    assert response.status_code == 400

    # Employee emails are taken too
    response = client.post("/api/admin/signup", json={**SIGNUP, "email": employee.email})
    assert response.status_code == 400


def test_signup_validates_payload(client):
    assert client.post("/api/admin/signup", json={**SIGNUP, "email": "nope"}).status_code == 422
    assert client.post("/api/admin/signup", json={**SIGNUP, "password": "123"}).status_code == 422


def test_admin_login_rejects_bad_password(client, admin):
    response = client.post("/api/admin/login", json={"email": admin.email, "password": "wrong-pass"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


def test_unknown_email_gets_same_answer(client):
    response = client.post("/api/admin/login", json={"email": "ghost@example.com", "password": "x"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


def test_protected_routes_require_token(client):
    response = client.get("/api/admin/profile")
    assert response.status_code == 401
    assert response.json()["detail"] == "Access token required"

    response = client.get("/api/admin/profile", headers={"Authorization": "Bearer bogus"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid or expired token"


def test_roles_are_enforced(client, admin_headers, employee_headers):
    assert client.get("/api/employee/profile", headers=admin_headers).status_code == 403
    assert client.get("/api/admin/sites", headers=employee_headers).status_code == 403
    assert client.get("/api/super-admin/pending-admins", headers=admin_headers).status_code == 403


def test_logout_invalidates_token(client, admin_headers):
    assert client.get("/api/admin/profile", headers=admin_headers).status_code == 200
    assert client.post("/api/admin/logout", headers=admin_headers).status_code == 200
    assert client.get("/api/admin/profile", headers=admin_headers).status_code == 401


def test_expired_session_is_rejected(client, db, admin_token, admin_headers):
    session = db.execute(
        select(UserSession).where(UserSession.session_token == admin_token)
    ).scalar_one()
    session.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    assert client.get("/api/admin/profile", headers=admin_headers).status_code == 401


def test_employee_login_is_single_device(client, employee):
    first = login(client, "employee", employee.email, EMPLOYEE_PASSWORD)
    second = login(client, "employee", employee.email, EMPLOYEE_PASSWORD)

    assert client.get("/api/employee/profile", headers={"Authorization": f"Bearer {first}"}).status_code == 401
    response = client.get("/api/employee/profile", headers={"Authorization": f"Bearer {second}"})
    assert response.status_code == 200
    assert response.json()["email"] == employee.email


def test_admin_sessions_are_concurrent(client, admin):
    first = login(client, "admin", admin.email, ADMIN_PASSWORD)
    second = login(client, "admin", admin.email, ADMIN_PASSWORD)

    for token in (first, second):
        assert client.get("/api/admin/profile", headers={"Authorization": f"Bearer {token}"}).status_code == 200


def test_deactivated_employee_cannot_log_in(client, admin_headers, employee, employee_headers):
    assert client.delete(f"/api/admin/employees/{employee.id}", headers=admin_headers).status_code == 204

    assert client.get("/api/employee/profile", headers=employee_headers).status_code == 401
    response = client.post(
        "/api/employee/login", json={"email": employee.email, "password": EMPLOYEE_PASSWORD}
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Account is inactive"


def test_change_password(client, admin, admin_headers):
    response = client.post(
        "/api/admin/change-password",
        json={"currentPassword": "wrong-pass", "newPassword": "brandnew1"},
        headers=admin_headers,
    )
    assert response.status_code == 400

    response = client.post(
        "/api/admin/change-password",
        json={"currentPassword": ADMIN_PASSWORD, "newPassword": "brandnew1"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert login(client, "admin", admin.email, "brandnew1")


def test_update_admin_profile(client, admin_headers):
    response = client.put("/api/admin/profile", json={"companyName": "  Acme Ltd  "}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["companyName"] == "Acme Ltd"
    assert response.json()["firstName"] == "Ada"


def test_super_admin_cannot_deactivate_self(client, make_admin):
    boss = make_admin(email="root@example.com", role=Admin.ROLE_SUPER_ADMIN)
    headers = {"Authorization": f"Bearer {login(client, 'admin', boss.email, ADMIN_PASSWORD)}"}

    response = client.put(
        "/api/super-admin/activate-admin", json={"adminId": boss.id, "isActive": False}, headers=headers
    )
    assert response.status_code == 400

    response = client.put(
        "/api/super-admin/activate-admin", json={"adminId": 9999, "isActive": True}, headers=headers
    )
    assert response.status_code == 404


def test_deactivating_admin_ends_sessions(client, make_admin, admin, admin_headers):
    boss = make_admin(email="root@example.com", role=Admin.ROLE_SUPER_ADMIN)
    headers = {"Authorization": f"Bearer {login(client, 'admin', boss.email, ADMIN_PASSWORD)}"}

    response = client.put(
        "/api/super-admin/activate-admin", json={"adminId": admin.id, "isActive": False}, headers=headers
    )
    assert response.status_code == 200
    assert client.get("/api/admin/profile", headers=admin_headers).status_code == 401


def test_create_super_admin_rejects_duplicate(db, admin):
    auth = AuthService(db)
    boss = auth.create_super_admin("Root@Example.com", "rootpass1", "Root", "User")
    assert boss.email == "root@example.com"
    assert boss.is_super_admin and boss.is_active and boss.is_verified

    with pytest.raises(AuthenticationError, match="already exists"):
        auth.create_super_admin(admin.email, "rootpass1", "Dup", "User")
