# tests/test_users.py
from healthcomm import models

from conftest import USER_PASSWORD, make_user


def test_admin_lists_users_without_password_hashes(admin_client, regular_user):
    response = admin_client.get("/api/users")
    assert response.status_code == 200
    usernames = {user["username"] for user in response.json()}
    assert usernames == {"admin", "staff"}
    assert all("passwordHash" not in user for user in response.json())


def test_admin_creates_user_who_can_log_in(admin_client):
    response = admin_client.post(
        "/api/users", json={"username": "nurse", "password": "nurse-password", "role": "user"}
    )
    assert response.status_code == 201
    assert response.json()["username"] == "nurse"
    assert response.json()["role"] == "user"

    admin_client.cookies.clear()
    login = admin_client.post("/api/auth/login", json={"username": "nurse", "password": "nurse-password"})
    assert login.status_code == 200


def test_duplicate_username_is_409(admin_client, regular_user):
    response = admin_client.post("/api/users", json={"username": "staff", "password": "x"})
    assert response.status_code == 409
    assert response.json() == {"error": "Username already exists"}


def test_admin_updates_user_role_and_password(admin_client, db, regular_user):
    response = admin_client.put(
        f"/api/users/{regular_user.id}", json={"role": "admin", "password": "new-password-1"}
    )
    assert response.status_code == 200
    assert response.json()["role"] == "admin"

    admin_client.cookies.clear()
    assert admin_client.post(
        "/api/auth/login", json={"username": "staff", "password": USER_PASSWORD}
    ).status_code == 401
    assert admin_client.post(
        "/api/auth/login", json={"username": "staff", "password": "new-password-1"}
    ).status_code == 200


def test_rename_to_taken_username_is_409(admin_client, db, regular_user):
    other = make_user(db, "reception", "password")
    response = admin_client.put(f"/api/users/{other.id}", json={"username": "staff"})
    assert response.status_code == 409


def test_admin_deletes_regular_user(admin_client, db, regular_user):
    response = admin_client.delete(f"/api/users/{regular_user.id}")
    assert response.status_code == 200
    assert response.json() == {"message": "User deleted successfully"}
    assert db.query(models.User).filter(models.User.username == "staff").first() is None


def test_admin_accounts_cannot_be_deleted(admin_client, admin_user):
    response = admin_client.delete(f"/api/users/{admin_user.id}")
    assert response.status_code == 403
    assert response.json() == {"error": "Cannot delete admin users"}


def test_unknown_user_is_404(admin_client):
    assert admin_client.get("/api/users/does-not-exist").status_code == 404


def test_non_admin_cannot_manage_users(user_client, db, regular_user):
    assert user_client.get("/api/users").status_code == 403

    response = user_client.post("/api/users", json={"username": "intruder", "password": "x"})
    assert response.status_code == 403
    assert response.json() == {"error": "admin access required"}
    assert db.query(models.User).filter(models.User.username == "intruder").first() is None

    assert user_client.delete(f"/api/users/{regular_user.id}").status_code == 403
    db.expire_all()
    assert db.query(models.User).filter(models.User.id == regular_user.id).first() is not None
