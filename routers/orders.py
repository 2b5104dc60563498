import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from pymongo.database import Database

from api_features import ApiFeatures, list_params
from database import create_document, get_db, serialize_doc, to_obj_id, update_document
from envelope import success
from schemas import Order as OrderSchema, OrderStatus
from security import get_current_user, is_privileged, require_roles

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"], dependencies=[Depends(get_current_user)])


# Request models
class OrderItemRequest(BaseModel):
    prod_id: str
    count: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    price: float = Field(..., ge=0)


class CreateOrderRequest(BaseModel):
    items: List[OrderItemRequest] = Field(..., min_length=1)
    address: str
    shipping: float = Field(..., ge=0)
    total: float = Field(..., ge=0)
    discount: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None
    phoneNumber: str
    customerName: str


class OrderStatusRequest(BaseModel):
    status: OrderStatus


def populate_order(db: Database, order: Dict[str, Any]) -> Dict[str, Any]:
    """Expand purchaser, admin and product references into summaries."""
    order = dict(order)
    user_ids = [order.get("user"), order.get("createdByAdmin")]
    users = {
        u["_id"]: u
        for u in db["user"].find({"_id": {"$in": [i for i in user_ids if i]}}, {"name": 1, "email": 1})
    }
    if order.get("user") in users:
        order["user"] = users[order["user"]]
    if order.get("createdByAdmin") in users:
        order["createdByAdmin"] = users[order["createdByAdmin"]]

    product_ids = [item["prod_id"] for item in order.get("items", [])]
    products = {
        p["_id"]: p
        for p in db["product"].find({"_id": {"$in": product_ids}}, {"name": 1, "image": 1})
    }
    order["items"] = [
        {**item, "prod_id": products.get(item["prod_id"], item["prod_id"])}
        for item in order.get("items", [])
    ]
    return serialize_doc(order)


@router.post("/cart")
def create_order(req: CreateOrderRequest, user=Depends(require_roles("user")), db: Database = Depends(get_db)):
    product_ids = {to_obj_id(item.prod_id) for item in req.items}
    available = db["product"].count_documents({"_id": {"$in": list(product_ids)}, "status": "active"})
    if available != len(product_ids):
        raise HTTPException(status_code=400, detail="One or more products are not available")

    fields = req.model_dump(exclude_none=True)
    fields["items"] = [{**item, "prod_id": to_obj_id(item["prod_id"])} for item in fields["items"]]
    order = create_document(db, "order", OrderSchema(user=user["_id"], **fields))
    logger.info("Order %s created by %s (total %.2f)", order["_id"], user["_id"], order["total"])
    return success("Order created successfully", {"order": populate_order(db, order)}, status_code=201)


@router.get("/")
def list_orders(
    params: Dict[str, Any] = Depends(list_params),
    user=Depends(get_current_user),
    db: Database = Depends(get_db),
):
    base: Dict[str, Any] = {}
    if not is_privileged(user):
        base["user"] = user["_id"]
    else:
        if params.get("customer"):
            base["user"] = to_obj_id(params["customer"])
        if params.get("user"):
            base["createdByAdmin"] = to_obj_id(params["user"])

    features = (
        ApiFeatures(db["order"], base, params)
        .search(["customerName", "phoneNumber"])
        .filter(exclude=("customer", "user"))
        .date_range("createdAt")
        .sort()
    )
    page_info = features.paginate()
    orders = features.find()
    total = features.count()

    meta = ApiFeatures.get_pagination_meta(page_info["page"], page_info["rowsPerPage"], total)
    return success("Orders retrieved successfully", {"orders": [populate_order(db, o) for o in orders]}, meta)


@router.get("/{id}")
def get_order(id: str, user=Depends(get_current_user), db: Database = Depends(get_db)):
    order = db["order"].find_one({"_id": to_obj_id(id)})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if not is_privileged(user) and order.get("user") != user["_id"]:
        raise HTTPException(status_code=403, detail="You do not have permission to view this order")
    return success("Order retrieved successfully", {"order": populate_order(db, order)})


@router.patch("/{id}/status")
def update_order_status(
    id: str,
    req: OrderStatusRequest,
    user=Depends(require_roles("admin", "superAdmin")),
    db: Database = Depends(get_db),
):
    # Any status may follow any other
    updated = update_document(db, "order", {"_id": to_obj_id(id)}, {"status": req.status})
    if not updated:
        raise HTTPException(status_code=404, detail="Order not found")
    logger.info("Order %s moved to %s by %s", updated["_id"], req.status, user["_id"])
    return success("Order status updated successfully", {"order": populate_order(db, updated)})
