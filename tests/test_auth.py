from datetime import timedelta

from database import utcnow
from tests.conftest import PASSWORD

SIGNUP = {
    "name": "Dana Reyes",
    "email": "Dana.Reyes@Example.com",
    "password": "hunter22",
    "confirmPassword": "hunter22",
}


def test_signup_creates_customer_with_tokens(client, db):
    res = client.post("/api/auth/signup", json=SIGNUP)
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    data = body["data"]
    assert data["accessToken"] and data["refreshToken"]
    assert data["accessToken"] != data["refreshToken"]
    assert data["user"]["role"] == "customer"
    assert data["user"]["status"] == "active"
    assert data["user"]["email"] == "dana.reyes@example.com"
    assert "password" not in data["user"]

    stored = db["user"].find_one({"email": "dana.reyes@example.com"})
    assert stored["password"] != "hunter22"


def test_signup_ignores_requested_role(client):
    res = client.post("/api/auth/signup", json={**SIGNUP, "role": "superAdmin"})
    assert res.status_code == 201
    assert res.json()["data"]["user"]["role"] == "customer"


def test_signup_password_mismatch(client):
    res = client.post("/api/auth/signup", json={**SIGNUP, "confirmPassword": "different"})
    assert res.status_code == 400
    body = res.json()
    assert body["message"] == "Validation failed"
    assert body["errors"] == [{"field": "confirmPassword", "message": "Passwords must match"}]


def test_signup_rejects_taken_email_case_insensitively(client, make_user):
    make_user(email="dana.reyes@example.com")
    res = client.post("/api/auth/signup", json=SIGNUP)
    assert res.status_code == 400
    assert res.json() == {"success": False, "message": "Email already exists"}


def test_signup_validation_errors_are_field_level(client):
    res = client.post("/api/auth/signup", json={"email": "not-an-email", "password": "123"})
    assert res.status_code == 400
    fields = {e["field"] for e in res.json()["errors"]}
    assert {"name", "email", "password", "confirmPassword"} <= fields


def test_login_success(client, make_user):
    user = make_user(email="ok@example.com")
    res = client.post("/api/auth/login", json={"email": "OK@example.com", "password": PASSWORD})
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["user"]["id"] == str(user["_id"])
    assert "password" not in data["user"]
    assert data["accessToken"] and data["refreshToken"]


def test_login_failures_share_generic_message(client, make_user):
    make_user(email="known@example.com")
    wrong_password = client.post("/api/auth/login", json={"email": "known@example.com", "password": "nope-nope"})
    unknown_email = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json() == {
        "success": False,
        "message": "Invalid email or password",
    }


def test_login_blocked_and_deleted_accounts(client, make_user):
    make_user(email="blocked@example.com", status="blocked")
    make_user(email="gone@example.com", status="deleted")

    blocked = client.post("/api/auth/login", json={"email": "blocked@example.com", "password": PASSWORD})
    assert blocked.status_code == 403
    assert blocked.json()["message"] == "Your account has been blocked"

    deleted = client.post("/api/auth/login", json={"email": "gone@example.com", "password": PASSWORD})
    assert deleted.status_code == 403
    assert deleted.json()["message"] == "Your account has been deleted"


def test_password_reset_flow(client, make_user, db):
    make_user(email="reset@example.com")
    res = client.patch("/api/auth/forgetPassword", json={"email": "reset@example.com"})
    assert res.status_code == 200
    otp = res.json()["data"]["otp"]
    assert len(otp) == 6 and otp.isdigit()

    stored = db["user"].find_one({"email": "reset@example.com"})
    assert stored["passwordResetOtp"] == otp

    res = client.patch(
        "/api/auth/resetPassword",
        json={"email": "reset@example.com", "otp": otp, "newPassword": "brandnew1"},
    )
    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "Password reset successfully"}

    stored = db["user"].find_one({"email": "reset@example.com"})
    assert "passwordResetOtp" not in stored
    assert "passwordResetOtpExpiresAt" not in stored

    old = client.post("/api/auth/login", json={"email": "reset@example.com", "password": PASSWORD})
    assert old.status_code == 401
    new = client.post("/api/auth/login", json={"email": "reset@example.com", "password": "brandnew1"})
    assert new.status_code == 200


def test_reset_with_wrong_otp(client, make_user):
    make_user(email="wrong@example.com")
    otp = client.patch("/api/auth/forgetPassword", json={"email": "wrong@example.com"}).json()["data"]["otp"]
    bad = "000000" if otp != "000000" else "111111"
    res = client.patch(
        "/api/auth/resetPassword",
        json={"email": "wrong@example.com", "otp": bad, "newPassword": "brandnew1"},
    )
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid OTP"


def test_reset_with_expired_otp(client, make_user, db):
    user = make_user(email="late@example.com")
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"passwordResetOtp": "123456", "passwordResetOtpExpiresAt": utcnow() - timedelta(minutes=1)}},
    )
    res = client.patch(
        "/api/auth/resetPassword",
        json={"email": "late@example.com", "otp": "123456", "newPassword": "brandnew1"},
    )
    assert res.status_code == 400
    assert res.json()["message"] == "OTP has expired"


def test_reset_without_requested_otp(client, make_user):
    make_user(email="never@example.com")
    res = client.patch(
        "/api/auth/resetPassword",
        json={"email": "never@example.com", "otp": "123456", "newPassword": "brandnew1"},
    )
    assert res.status_code == 400


def test_forget_password_unknown_email(client):
    res = client.patch("/api/auth/forgetPassword", json={"email": "nobody@example.com"})
    assert res.status_code == 404
    assert res.json()["message"] == "User not found"


def test_otp_not_returned_outside_development(client, make_user, settings):
    settings.environment = "production"
    make_user(email="prod@example.com")
    res = client.patch("/api/auth/forgetPassword", json={"email": "prod@example.com"})
    assert res.status_code == 200
    data = res.json()["data"]
    assert "otp" not in data
    assert "expiresAt" in data


def test_hidden_fields_not_exposed_after_forget(client, make_user, auth_header):
    admin = make_user(role="admin", max_managed=3)
    managed = make_user(role="user", manager=admin, email="managed@example.com")
    client.patch("/api/auth/forgetPassword", json={"email": "managed@example.com"})
    res = client.get(f"/api/users/{managed['_id']}", headers=auth_header(admin))
    assert res.status_code == 200
    user = res.json()["data"]["user"]
    for field in ("password", "passwordResetOtp", "passwordResetOtpExpiresAt"):
        assert field not in user
