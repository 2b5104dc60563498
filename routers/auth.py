import logging
import secrets
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field, ValidationInfo, field_validator
from pymongo.database import Database

from config import Settings
from database import create_document, get_db, get_settings, serialize_user, update_document, utcnow
from envelope import success
from schemas import User as UserSchema
from security import hash_password, issue_tokens, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


# Request models
class PasswordConfirmation(BaseModel):
    password: str = Field(..., min_length=6)
    confirmPassword: str

    @field_validator("confirmPassword")
    @classmethod
    def passwords_match(cls, v: str, info: ValidationInfo) -> str:
        if "password" in info.data and v != info.data["password"]:
            raise ValueError("Passwords must match")
        return v


class SignupRequest(PasswordConfirmation):
    name: str = Field(..., min_length=1)
    email: EmailStr


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ForgetPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., min_length=6, max_length=6)
    newPassword: str = Field(..., min_length=6)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def email_taken(db: Database, email: str) -> bool:
    return db["user"].find_one({"email": normalize_email(email)}, {"_id": 1}) is not None


def generate_otp() -> str:
    return str(100000 + secrets.randbelow(900000))


def send_otp_email(email: str, otp: str):
    # No mail transport; the code only goes to the log
    logger.info("[EMAIL SIMULATION] Sending OTP to %s: %s", email, otp)


@router.post("/signup")
def signup(req: SignupRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    if email_taken(db, req.email):
        raise HTTPException(status_code=400, detail="Email already exists")

    user = UserSchema(
        name=req.name,
        email=req.email,
        password=hash_password(req.password),
        role="customer",
        status="active",
    )
    created = create_document(db, "user", user)
    logger.info("Customer %s signed up", created["_id"])
    return success(
        "Account created successfully",
        {"user": serialize_user(created), **issue_tokens(created["_id"], settings)},
        status_code=201,
    )


@router.post("/login")
def login(req: LoginRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = db["user"].find_one({"email": normalize_email(req.email)})
    if not user or not verify_password(req.password, user.get("password")):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if user.get("status") == "blocked":
        raise HTTPException(status_code=403, detail="Your account has been blocked")
    if user.get("status") == "deleted":
        raise HTTPException(status_code=403, detail="Your account has been deleted")

    return success("Login successful", {"user": serialize_user(user), **issue_tokens(user["_id"], settings)})


@router.patch("/forgetPassword")
def forget_password(req: ForgetPasswordRequest, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    email = normalize_email(req.email)
    user = db["user"].find_one({"email": email}, {"_id": 1})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    otp = generate_otp()
    expires_at = utcnow() + timedelta(minutes=settings.otp_expiry_minutes)
    update_document(
        db, "user", {"_id": user["_id"]},
        {"passwordResetOtp": otp, "passwordResetOtpExpiresAt": expires_at},
    )
    send_otp_email(email, otp)

    data = {"expiresAt": expires_at.isoformat()}
    if settings.is_development:
        data["otp"] = otp
    return success("OTP sent to your email successfully", data)


@router.patch("/resetPassword")
def reset_password(req: ResetPasswordRequest, db: Database = Depends(get_db)):
    user = db["user"].find_one(
        {"email": normalize_email(req.email)},
        {"passwordResetOtp": 1, "passwordResetOtpExpiresAt": 1},
    )
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    stored = user.get("passwordResetOtp")
    if not stored or stored != req.otp:
        raise HTTPException(status_code=400, detail="Invalid OTP")
    expires_at = user.get("passwordResetOtpExpiresAt")
    if not expires_at or utcnow() > expires_at:
        raise HTTPException(status_code=400, detail="OTP has expired")

    update_document(
        db, "user", {"_id": user["_id"]},
        {"password": hash_password(req.newPassword)},
        unset={"passwordResetOtp": "", "passwordResetOtpExpiresAt": ""},
    )
    logger.info("Password reset for user %s", user["_id"])
    return success("Password reset successfully")
