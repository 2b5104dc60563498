import logging
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database

from api_features import ApiFeatures, list_params
from database import (
    USER_PUBLIC_PROJECTION,
    create_document,
    get_db,
    serialize_user,
    to_obj_id,
    update_document,
)
from envelope import success
from routers.auth import PasswordConfirmation, email_taken
from schemas import User as UserSchema, UserStatus
from security import get_current_user, hash_password, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/users",
    tags=["users"],
    dependencies=[Depends(require_roles("admin", "superAdmin"))],
)

QUOTA_REACHED = "You have reached the maximum number of users you can manage"


class CreateUserRequest(PasswordConfirmation):
    name: str = Field(..., min_length=1)
    email: EmailStr
    role: Optional[Literal["customer", "admin"]] = None


class StatusUpdateRequest(BaseModel):
    status: UserStatus


def active_managed_count(db: Database, admin_id) -> int:
    return db["user"].count_documents({"managerId": admin_id, "status": "active"})


def ensure_quota(db: Database, admin: Dict[str, Any]):
    # Check-then-act: two concurrent creates can both pass this check
    if active_managed_count(db, admin["_id"]) >= admin.get("maxManagedUsers", 0):
        raise HTTPException(status_code=400, detail=QUOTA_REACHED)


@router.get("/")
def list_users(
    params: Dict[str, Any] = Depends(list_params),
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if user["role"] == "admin":
        base = {"managerId": user["_id"]}
    else:
        base = {"role": {"$ne": "superAdmin"}}

    features = (
        ApiFeatures(db["user"], base, params, projection=USER_PUBLIC_PROJECTION)
        .search(["name", "email"])
        .filter()
        .sort()
    )
    page_info = features.paginate()
    users = features.find()
    total = features.count()

    meta = ApiFeatures.get_pagination_meta(page_info["page"], page_info["rowsPerPage"], total)
    return success("Users retrieved successfully", {"users": [serialize_user(u) for u in users]}, meta)


@router.get("/{id}")
def get_user(id: str, db: Database = Depends(get_db)):
    found = db["user"].find_one({"_id": to_obj_id(id)}, USER_PUBLIC_PROJECTION)
    if not found:
        raise HTTPException(status_code=404, detail="User not found")
    return success("User retrieved successfully", {"user": serialize_user(found)})


@router.post("/")
def create_user(req: CreateUserRequest, user=Depends(get_current_user), db: Database = Depends(get_db)):
    fields: Dict[str, Any] = {"name": req.name, "email": req.email, "role": req.role or "user"}
    if user["role"] == "admin":
        ensure_quota(db, user)
        fields["managerId"] = user["_id"]
        fields["role"] = "user"
    elif user["role"] == "superAdmin":
        fields["role"] = "admin"

    if email_taken(db, req.email):
        raise HTTPException(status_code=400, detail="Email already exists")

    created = create_document(db, "user", UserSchema(password=hash_password(req.password), **fields))
    logger.info("%s %s created %s %s", user["role"], user["_id"], created["role"], created["_id"])
    return success("User created successfully", {"user": serialize_user(created)}, status_code=201)


@router.patch("/{id}/status")
def update_user_status(
    id: str,
    req: StatusUpdateRequest,
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    user_id = to_obj_id(id)
    if user["role"] == "admin" and req.status == "active":
        ensure_quota(db, user)

    updated = update_document(db, "user", {"_id": user_id}, {"status": req.status}, projection=USER_PUBLIC_PROJECTION)
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return success("User status updated successfully", {"user": serialize_user(updated)})


@router.delete("/{id}")
def delete_user(id: str, db: Database = Depends(get_db)):
    updated = update_document(db, "user", {"_id": to_obj_id(id)}, {"status": "deleted"}, projection={"_id": 1})
    if not updated:
        raise HTTPException(status_code=404, detail="User not found")
    return success("User deleted successfully")
