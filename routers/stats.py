from fastapi import APIRouter, Depends
from pymongo.database import Database

from database import get_db
from envelope import success
from security import require_roles

router = APIRouter(prefix="/api/stats", tags=["stats"])


def superadmin_stats(db: Database) -> dict:
    not_superadmin = {"role": {"$ne": "superAdmin"}}
    return {
        "totalUsers": db["user"].count_documents(not_superadmin),
        "activeUsers": db["user"].count_documents({**not_superadmin, "status": "active"}),
        "remainingUsers": None,
        "maxManagedUsers": None,
        "totalOrders": db["order"].count_documents({}),
        "totalProducts": db["product"].count_documents({"status": {"$ne": "deleted"}}),
    }


def admin_stats(db: Database, admin: dict) -> dict:
    max_managed = admin.get("maxManagedUsers") or 0
    active = db["user"].count_documents({"managerId": admin["_id"], "status": "active"})
    managed_ids = [u["_id"] for u in db["user"].find({"managerId": admin["_id"]}, {"_id": 1})]
    total_orders = db["order"].count_documents({"user": {"$in": managed_ids}}) if managed_ids else 0
    return {
        "totalUsers": db["user"].count_documents({"managerId": admin["_id"], "status": {"$ne": "deleted"}}),
        "activeUsers": active,
        "remainingUsers": max(0, max_managed - active),
        "maxManagedUsers": max_managed,
        "totalOrders": total_orders,
        "totalProducts": db["product"].count_documents({"admin": admin["_id"], "status": {"$ne": "deleted"}}),
    }


@router.get("/")
def get_stats(user=Depends(require_roles("admin", "superAdmin")), db: Database = Depends(get_db)):
    if user["role"] == "superAdmin":
        stats = superadmin_stats(db)
    else:
        stats = admin_stats(db, user)
    return success("Stats retrieved successfully", {"stats": stats})
