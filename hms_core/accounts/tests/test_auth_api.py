# backend/hms_core/accounts/tests/test_auth_api.py
from datetime import timedelta

import pytest
from django.utils import timezone

from hms_core.accounts.models import UserProfile, UserStatus

pytestmark = pytest.mark.django_db

PASSWORD = "S3cure!pass-word"


def _login(client, username, password=PASSWORD):
    return client.post("/api/v1/auth/login/", {"username": username, "password": password}, format="json")


def test_register_then_login(api_client):
    r = api_client.post(
        "/api/v1/auth/register/",
        {
            "username": "minh",
            "email": "minh@example.com",
            "password": "Tr1cky-horse-battery",
            "first_name": "Minh",
            "last_name": "Le",
        },
        format="json",
    )
    assert r.status_code == 201, r.data
    assert r.data["role"] == "PATIENT"
    assert "password" not in r.data

    r = _login(api_client, "minh", "Tr1cky-horse-battery")
    assert r.status_code == 200, r.data
    assert r.data["detail"] == "login ok"
    assert r.data["user"]["username"] == "minh"
    assert r.cookies["hms_access"].value == r.data["access"]
    assert r.cookies["hms_refresh"]["httponly"]


def test_login_cookie_lifetimes(api_client, nurse):
    r = _login(api_client, nurse.username)
    assert int(r.cookies["hms_access"]["max-age"]) == 10 * 60
    assert int(r.cookies["hms_refresh"]["max-age"]) == 14 * 24 * 3600

def test_register_rejects_duplicate_email(api_client, doctor):
    r = api_client.post(
        "/api/v1/auth/register/",
        {"username": "someone", "email": doctor.email, "password": "Tr1cky-horse-battery"},
        format="json",
    )
    assert r.status_code == 400
    assert r.data["error"]["code"] == "validation_error"
    assert "email" in r.data["error"]["details"]


def test_bad_password_is_401_envelope(api_client, doctor):
    r = _login(api_client, doctor.username, "nope")

    assert r.status_code == 401
    assert r.data["error"]["code"] == "authentication_failed"
    assert UserProfile.objects.get(user=doctor).failed_login_attempts == 1


def test_lockout_after_five_failures(api_client, doctor):
    for _ in range(4):
        assert _login(api_client, doctor.username, "nope").status_code == 401

    r = _login(api_client, doctor.username, "nope")
    assert r.status_code == 423
    assert r.data["error"]["code"] == "account_locked"

    # correct password is refused while locked
    r = _login(api_client, doctor.username)
    assert r.status_code == 423
    assert UserProfile.objects.get(user=doctor).status == UserStatus.LOCKED


def test_expired_lock_gives_a_fresh_set_of_attempts(api_client, doctor):
    for _ in range(5):
        _login(api_client, doctor.username, "nope")
    UserProfile.objects.filter(user=doctor).update(locked_until=timezone.now() - timedelta(minutes=1))

    r = _login(api_client, doctor.username, "nope")
    assert r.status_code == 401
    profile = UserProfile.objects.get(user=doctor)
    assert profile.failed_login_attempts == 1
    assert profile.locked_until is None
    assert profile.status == UserStatus.ACTIVE


def test_successful_login_resets_counter(api_client, doctor):
    _login(api_client, doctor.username, "nope")
    assert _login(api_client, doctor.username).status_code == 200
    assert UserProfile.objects.get(user=doctor).failed_login_attempts == 0


def test_cookie_session_reaches_me_and_refresh(api_client, nurse):
    assert _login(api_client, nurse.username).status_code == 200

    # cookies from login are replayed by the test client
    r = api_client.get("/api/v1/me/")
    assert r.status_code == 200
    assert r.data["user"]["username"] == nurse.username
    assert r.data["roles"] == ["NURSE"]
    assert "LAB.CREATE_RESULTS" in r.data["permissions"]

    r = api_client.post("/api/v1/auth/refresh/", {}, format="json")
    assert r.status_code == 200, r.data
    assert r.data["access"]


def test_bearer_token_of_locked_account_is_refused(api_client, nurse):
    access = _login(api_client, nurse.username).data["access"]
    api_client.cookies.clear()

    UserProfile.objects.filter(user=nurse).update(
        status=UserStatus.LOCKED, locked_until=timezone.now() + timedelta(hours=1)
    )

    r = api_client.get("/api/v1/me/", HTTP_AUTHORIZATION=f"Bearer {access}")
    assert r.status_code == 423
    assert r.data["error"]["code"] == "account_locked"


def test_refresh_requires_token(api_client):
    r = api_client.post("/api/v1/auth/refresh/", {}, format="json")
    assert r.status_code == 400
    assert "refresh" in r.data["error"]["details"]


def test_logout_clears_cookies(api_client, nurse):
    _login(api_client, nurse.username)
    r = api_client.post("/api/v1/auth/logout/")
    assert r.status_code == 200
    assert r.cookies["hms_access"].value == ""


def test_me_requires_authentication(api_client):
    r = api_client.get("/api/v1/me/")
    assert r.status_code == 401
    assert r.data["error"]["code"] == "not_authenticated"


def test_me_patch_updates_own_profile(client_for, patient_user):
    r = client_for(patient_user).patch("/api/v1/me/", {"phone": "0911222333"}, format="json")
    assert r.status_code == 200, r.data
    assert r.data["user"]["phone"] == "0911222333"


def test_forgot_password_does_not_leak(api_client, doctor, mailoutbox):
    r1 = api_client.post("/api/v1/auth/forgot-password/", {"email": doctor.email}, format="json")
    r2 = api_client.post("/api/v1/auth/forgot-password/", {"email": "ghost@example.com"}, format="json")

    assert r1.status_code == r2.status_code == 200
    assert r1.data == r2.data
    assert len(mailoutbox) == 1


def test_reset_password_via_api(api_client, doctor, mailoutbox):
    api_client.post("/api/v1/auth/forgot-password/", {"email": doctor.email}, format="json")
    token = UserProfile.objects.get(user=doctor).password_reset_token

    r = api_client.post(
        "/api/v1/auth/reset-password/",
        {"token": token, "new_password": "Brand-new-Passw0rd"},
        format="json",
    )
    assert r.status_code == 200, r.data
    assert _login(api_client, doctor.username, "Brand-new-Passw0rd").status_code == 200


def test_change_password_via_api(client_for, doctor):
    r = client_for(doctor).post(
        "/api/v1/auth/change-password/",
        {"old_password": PASSWORD, "new_password": "Brand-new-Passw0rd"},
        format="json",
    )
    assert r.status_code == 200, r.data
    doctor.refresh_from_db()
    assert doctor.check_password("Brand-new-Passw0rd")


def test_verify_email_via_api(api_client, patient_user):
    profile = UserProfile.objects.get(user=patient_user)
    profile.email_verification_token = "tok-123"
    profile.email_verification_expires = timezone.now() + timedelta(hours=1)
    profile.save()

    r = api_client.post("/api/v1/auth/verify-email/", {"token": "tok-123"}, format="json")
    assert r.status_code == 200
    assert UserProfile.objects.get(id=profile.id).email_verified is True

    r = api_client.post("/api/v1/auth/verify-email/", {"token": "tok-123"}, format="json")
    assert r.status_code == 400
