import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, EmailStr, Field
from pymongo.database import Database

from api_features import ApiFeatures, list_params
from database import USER_PUBLIC_PROJECTION, create_document, get_db, serialize_user, to_obj_id, update_document
from envelope import success
from routers.auth import PasswordConfirmation, email_taken
from schemas import User as UserSchema, UserStatus
from security import hash_password, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/super-admin",
    tags=["super-admin"],
    dependencies=[Depends(require_roles("superAdmin"))],
)


class CreateAdminRequest(PasswordConfirmation):
    name: str = Field(..., min_length=1)
    email: EmailStr
    numberOfUsers: int = Field(..., ge=0)


class AdminStatusRequest(BaseModel):
    status: UserStatus


def admin_with_stats(db: Database, admin: Dict[str, Any]) -> Dict[str, Any]:
    # Counts are scoped to the users this admin manages
    data = serialize_user(admin)
    data["numberOfUsers"] = db["user"].count_documents({"managerId": admin["_id"]})
    data["numberOfCurrentActiveUsers"] = db["user"].count_documents(
        {"managerId": admin["_id"], "status": "active"}
    )
    return data


@router.get("/")
def list_admins(params: Dict[str, Any] = Depends(list_params), db: Database = Depends(get_db)):
    features = (
        ApiFeatures(db["user"], {"role": "admin"}, params, projection=USER_PUBLIC_PROJECTION)
        .search(["name", "email"])
        .filter()
        .sort()
    )
    page_info = features.paginate()
    admins = features.find()
    total = features.count()

    meta = ApiFeatures.get_pagination_meta(page_info["page"], page_info["rowsPerPage"], total)
    return success(
        "Admins retrieved successfully",
        {"admins": [admin_with_stats(db, a) for a in admins]},
        meta,
    )


@router.post("/")
def create_admin(req: CreateAdminRequest, db: Database = Depends(get_db)):
    if email_taken(db, req.email):
        raise HTTPException(status_code=400, detail="Email already exists")

    admin = UserSchema(
        name=req.name,
        email=req.email,
        password=hash_password(req.password),
        role="admin",
        maxManagedUsers=req.numberOfUsers,
    )
    created = create_document(db, "user", admin)
    logger.info("Admin %s created with quota %d", created["_id"], req.numberOfUsers)
    return success("Admin created successfully", {"admin": serialize_user(created)}, status_code=201)


@router.patch("/{id}/status")
def update_admin_status(id: str, req: AdminStatusRequest, db: Database = Depends(get_db)):
    updated = update_document(
        db, "user", {"_id": to_obj_id(id), "role": "admin"}, {"status": req.status},
        projection=USER_PUBLIC_PROJECTION,
    )
    if not updated:
        raise HTTPException(status_code=404, detail="Admin not found")
    return success("Admin status updated successfully", {"admin": serialize_user(updated)})
