from datetime import timedelta

from fastapi import status
from sqlalchemy import func, select

from contacts_api import crud, models
from contacts_api.auth import verify_password
from contacts_api.crud import utcnow

from conftest import STRONG_PASSWORD, auth_headers, create_user


def register_payload(email="new@example.com", **overrides):
    payload = {
        "name": "New User",
        "email": email,
        "password": STRONG_PASSWORD,
        "confirmPassword": STRONG_PASSWORD,
    }
    payload.update(overrides)
    return payload


def count_users(db_session, email):
    return db_session.scalar(
        select(func.count()).select_from(models.User).where(models.User.email == email)
    )


def test_register_creates_pending_user_and_sends_activation(client, db_session, mailer):
    resp = client.post("/api/users", json=register_payload())
    assert resp.status_code == status.HTTP_201_CREATED
    body = resp.json()
    assert body["errors"] is None
    assert body["message"] == "User created, please check your email"
    assert body["data"]["email"] == "new@example.com"
    assert body["data"]["isActive"] is False
    assert body["data"]["expireTime"]
    assert "password" not in body["data"]

    user = db_session.scalars(select(models.User)).one()
    assert not user.is_active
    assert user.expire_time > utcnow()
    assert verify_password(STRONG_PASSWORD, user.password)
    assert mailer.sent == [("activation", "new@example.com", user.user_id)]


def test_register_validation_errors(client, db_session):
    resp = client.post(
        "/api/users",
        json={"email": "bad", "password": "weak", "confirmPassword": "other"},
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    body = resp.json()
    assert body["message"] == "Register Failed"
    assert body["errors"][0] == "name is required"
    assert "email must be a valid email" in body["errors"]
    assert body["errors"][-1] == "Password does not match"
    assert count_users(db_session, "bad") == 0


def test_register_accepts_numeric_name(client, db_session):
    resp = client.post("/api/users", json=register_payload(name=42))
    assert resp.status_code == status.HTTP_201_CREATED
    assert db_session.scalars(select(models.User)).one().name == "42"


def test_register_rejects_active_email(client, user):
    resp = client.post("/api/users", json=register_payload(email=user.email))
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["errors"] == ["Email already activated"]


def test_register_rejects_pending_unexpired_email(client, db_session, mailer):
    assert client.post("/api/users", json=register_payload()).status_code == 201
    resp = client.post("/api/users", json=register_payload())
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["errors"] == [
        "Email already registered, please check your email"
    ]
    assert count_users(db_session, "new@example.com") == 1
    assert len(mailer.sent) == 1


def test_register_supersedes_expired_pending_user(client, db_session, mailer):
    old = create_user(
        db_session,
        email="new@example.com",
        is_active=False,
        expire_time=utcnow() - timedelta(minutes=1),
    )
    old_id = old.user_id

    resp = client.post("/api/users", json=register_payload())
    assert resp.status_code == status.HTTP_201_CREATED

    db_session.expire_all()
    users = db_session.scalars(
        select(models.User).where(models.User.email == "new@example.com")
    ).all()
    assert len(users) == 1
    assert users[0].user_id != old_id
    assert users[0].expire_time > utcnow()
    assert mailer.sent[-1][2] == users[0].user_id


def test_register_rolls_back_when_activation_email_fails(client, db_session, mailer):
    mailer.fail = True
    resp = client.post("/api/users", json=register_payload())
    assert resp.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert resp.json()["errors"] == ["Send email failed"]
    assert count_users(db_session, "new@example.com") == 0


def test_activation_succeeds_once(client, db_session, mailer):
    client.post("/api/users", json=register_payload())
    user_id = mailer.sent[0][2]

    resp = client.get(f"/api/users/activate/{user_id}")
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["data"] == {"name": "New User", "email": "new@example.com"}

    user = db_session.get(models.User, user_id)
    db_session.refresh(user)
    assert user.is_active
    assert user.expire_time is None

    again = client.get(f"/api/users/activate/{user_id}")
    assert again.status_code == status.HTTP_400_BAD_REQUEST
    assert again.json()["errors"] == ["User not found or expired"]


def test_activation_rejects_expired_and_unknown_users(client, db_session):
    expired = create_user(
        db_session,
        email="late@example.com",
        is_active=False,
        expire_time=utcnow() - timedelta(seconds=1),
    )
    for user_id in (expired.user_id, "no-such-user"):
        resp = client.get(f"/api/users/activate/{user_id}")
        assert resp.status_code == status.HTTP_400_BAD_REQUEST
        assert resp.json()["errors"] == ["User not found or expired"]


def test_login_returns_token_pair(client, user):
    resp = client.post(
        "/api/users/login", json={"email": user.email, "password": STRONG_PASSWORD}
    )
    assert resp.status_code == status.HTTP_200_OK
    body = resp.json()
    assert body["message"] == "Login successfully"
    assert body["data"] == {
        "userId": user.user_id,
        "name": user.name,
        "email": user.email,
    }
    assert body["accessToken"] and body["refreshToken"]


def test_login_failures_are_indistinguishable(client, db_session, user):
    create_user(
        db_session,
        email="pending@example.com",
        is_active=False,
        expire_time=utcnow() + timedelta(hours=1),
    )
    attempts = [
        {"email": "nobody@example.com", "password": STRONG_PASSWORD},
        {"email": user.email, "password": "Wrong123!"},
        {"email": "pending@example.com", "password": STRONG_PASSWORD},
    ]
    bodies = [client.post("/api/users/login", json=a).json() for a in attempts]
    assert all(b["errors"] == ["Invalid email or password"] for b in bodies)
    assert all(b["message"] == "Login Failed" for b in bodies)


def test_login_validation(client):
    resp = client.post("/api/users/login", json={"email": "nope"})
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["errors"] == [
        "email must be a valid email",
        "password is required",
    ]


def test_update_user_changes_only_given_fields(client, db_session, user, headers):
    resp = client.put(
        f"/api/users/{user.user_id}",
        json={"name": "Renamed", "password": "Another456?", "confirmPassword": "Another456?"},
        headers=headers,
    )
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["data"] == {"name": "Renamed"}

    db_session.refresh(user)
    assert user.name == "Renamed"
    assert user.email == "user@example.com"
    assert verify_password("Another456?", user.password)


def test_update_user_password_mismatch(client, user, headers):
    resp = client.put(
        f"/api/users/{user.user_id}",
        json={"password": "Another456?", "confirmPassword": "Different456?"},
        headers=headers,
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["errors"] == ["Password does not match"]


def test_update_user_rejects_taken_email(client, db_session, user, headers):
    create_user(db_session, email="taken@example.com")
    resp = client.put(
        f"/api/users/{user.user_id}",
        json={"email": "taken@example.com"},
        headers=headers,
    )
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["errors"] == ["Email already used"]


def test_update_unknown_user(client, headers):
    resp = client.put("/api/users/missing", json={"name": "X"}, headers=headers)
    assert resp.status_code == status.HTTP_404_NOT_FOUND
    assert resp.json()["errors"] == ["User not found"]


def test_delete_user_cascades_to_contacts(client, db_session, user, headers):
    user_id = user.user_id
    created = client.post(
        "/api/contacts",
        json={"firstName": "Ann", "Addresses": [{"addressType": "home", "street": "1 Main"}]},
        headers=headers,
    )
    assert created.status_code == status.HTTP_201_CREATED

    resp = client.delete(f"/api/users/{user_id}", headers=headers)
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["message"] == "User deleted successfully"

    db_session.expire_all()
    assert db_session.scalar(select(func.count()).select_from(models.User)) == 0
    assert db_session.scalar(select(func.count()).select_from(models.Contact)) == 0
    assert db_session.scalar(select(func.count()).select_from(models.Address)) == 0

    missing = client.delete(f"/api/users/{user_id}", headers=headers)
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_forgot_password_emails_new_password(client, db_session, user, mailer):
    resp = client.post("/api/users/forgot-password", json={"email": user.email})
    assert resp.status_code == status.HTTP_200_OK
    assert resp.json()["message"] == "Forgot Password success, please check your email"

    kind, email, new_password = mailer.sent[-1]
    assert (kind, email) == ("password", user.email)
    db_session.refresh(user)
    assert verify_password(new_password, user.password)
    assert not verify_password(STRONG_PASSWORD, user.password)


def test_forgot_password_keeps_old_password_when_email_fails(
    client, db_session, user, mailer
):
    mailer.fail = True
    resp = client.post("/api/users/forgot-password", json={"email": user.email})
    assert resp.status_code == status.HTTP_400_BAD_REQUEST
    assert resp.json()["errors"] == ["Email not sent"]

    _, _, attempted = mailer.sent[-1]
    db_session.refresh(user)
    assert verify_password(STRONG_PASSWORD, user.password)
    assert not verify_password(attempted, user.password)


def test_forgot_password_unknown_email(client):
    resp = client.post(
        "/api/users/forgot-password", json={"email": "ghost@example.com"}
    )
    assert resp.status_code == status.HTTP_404_NOT_FOUND
    assert resp.json()["errors"] == ["User not found"]


def test_users_cannot_update_or_delete_other_accounts(client, db_session, user):
    other = create_user(db_session, email="other@example.com")
    other_headers = auth_headers(other)
    victim_id = user.user_id

    resp = client.put(
        f"/api/users/{victim_id}",
        json={"password": "Hacked123!", "confirmPassword": "Hacked123!"},
        headers=other_headers,
    )
    assert resp.status_code == status.HTTP_404_NOT_FOUND
    assert resp.json()["errors"] == ["User not found"]

    resp = client.delete(f"/api/users/{victim_id}", headers=other_headers)
    assert resp.status_code == status.HTTP_404_NOT_FOUND
    assert resp.json()["errors"] == ["User not found"]

    db_session.expire_all()
    assert db_session.get(models.User, victim_id) is not None
    login = client.post(
        "/api/users/login", json={"email": "user@example.com", "password": "Hacked123!"}
    )
    assert login.status_code == status.HTTP_400_BAD_REQUEST


def test_activation_window_closes_at_expiry_instant(db_session, monkeypatch):
    deadline = utcnow() + timedelta(minutes=5)
    pending = create_user(
        db_session, email="edge@example.com", is_active=False, expire_time=deadline
    )
    monkeypatch.setattr(crud, "utcnow", lambda: deadline)

    assert isinstance(crud.get_pending_user(db_session, pending.user_id), crud.NotFound)
    assert not crud.is_pending_unexpired(pending)
