import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Tuple, Union

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from pydantic import BaseModel, Field, ValidationError
from pymongo.database import Database
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from api_features import ApiFeatures, list_params
from config import Settings
from database import create_document, get_db, get_settings, serialize_doc, to_obj_id, update_document
from envelope import success
from schemas import PRIVILEGED_ROLES, Product as ProductSchema, ProductStatus
from security import get_optional_user, owner_id_for, require_roles
from storage import discard_image, save_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/products", tags=["products"])

ListField = Optional[Union[List[str], str]]


# Request models
class ProductCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    image: Optional[str] = None
    category: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    description: Optional[str] = None
    colors: ListField = None
    sizes: ListField = None


class ProductUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    image: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    description: Optional[str] = None
    colors: ListField = None
    sizes: ListField = None
    status: Optional[ProductStatus] = None


class ProductStatusRequest(BaseModel):
    status: ProductStatus


def parse_list_field(value: Union[List[str], str, None]) -> List[str]:
    """Accept a list, a JSON-encoded list, or a bare string."""
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v) for v in value]
    try:
        parsed = json.loads(value)
    except ValueError:
        return [value] if value else []
    if parsed is None:
        return []
    if isinstance(parsed, list):
        return [str(v) for v in parsed]
    if isinstance(parsed, str):
        return [parsed] if parsed else []
    return [value]


async def read_product_payload(request: Request) -> Tuple[Dict[str, Any], Optional[UploadFile]]:
    """Body from either JSON or multipart form, plus the uploaded ``image`` file if any.

    The file is returned unsaved; an upload wins over an image URL.
    """
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data") or content_type.startswith("application/x-www-form-urlencoded"):
        form = await request.form()
        payload: Dict[str, Any] = {}
        upload = None
        for key in set(form.keys()):
            values = form.getlist(key)
            files = [v for v in values if isinstance(v, UploadFile) and v.filename]
            texts = [v for v in values if not isinstance(v, UploadFile)]
            if key == "image" and files:
                upload = files[0]
            elif texts:
                payload[key] = texts if len(texts) > 1 else texts[0]
        return payload, upload

    body = await request.body()
    if not body:
        return {}, None
    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be an object")
    return payload, None


@contextmanager
def pending_image(upload: Optional[UploadFile], settings: Settings):
    """Store an uploaded image; remove it again if the write that uses it fails."""
    if upload is None:
        yield None
        return
    path = save_image(upload, settings)
    try:
        yield path
    except Exception:
        discard_image(path, settings)
        raise


def validate_payload(model, payload: Dict[str, Any]):
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise RequestValidationError(e.errors())


def product_fields(req: BaseModel) -> Dict[str, Any]:
    fields = req.model_dump(exclude_unset=True)
    for key in ("colors", "sizes"):
        if key in fields:
            fields[key] = parse_list_field(fields[key])
    if "image" in fields and not fields["image"]:
        fields.pop("image")
    return fields


@router.get("/")
def list_products(
    params: Dict[str, Any] = Depends(list_params),
    user=Depends(get_optional_user),
    db: Database = Depends(get_db),
):
    base: Dict[str, Any] = {}
    role = user.get("role") if user else None
    if role not in PRIVILEGED_ROLES:
        base["status"] = "active"
    if role == "admin":
        base["admin"] = user["_id"]
    elif user and user.get("managerId"):
        base["admin"] = user["managerId"]

    features = ApiFeatures(db["product"], base, params).search(["name", "description"]).filter().sort()
    page_info = features.paginate()
    products = features.find()
    total = features.count()

    meta = ApiFeatures.get_pagination_meta(page_info["page"], page_info["rowsPerPage"], total)
    return success("Products retrieved successfully", {"products": serialize_doc(products)}, meta)


@router.get("/{id}")
def get_product(id: str, db: Database = Depends(get_db)):
    product = db["product"].find_one({"_id": to_obj_id(id)})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return success("Product retrieved successfully", {"product": serialize_doc(product)})


def _create_product(user, db: Database, settings: Settings, payload: Dict[str, Any], upload: Optional[UploadFile]):
    req = validate_payload(ProductCreateRequest, payload)
    fields = product_fields(req)
    fields["admin"] = owner_id_for(user)
    fields.setdefault("colors", [])
    fields.setdefault("sizes", [])

    with pending_image(upload, settings) as image_path:
        if image_path:
            fields["image"] = image_path
        product = create_document(db, "product", ProductSchema(**fields))
    logger.info("Product %s created for admin %s", product["_id"], product["admin"])
    return success("Product created successfully", {"product": serialize_doc(product)}, status_code=201)


def _update_product(id: str, user, db: Database, settings: Settings, payload: Dict[str, Any], upload: Optional[UploadFile]):
    product_id = to_obj_id(id)
    product = db["product"].find_one({"_id": product_id})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if product.get("admin") != owner_id_for(user):
        raise HTTPException(status_code=403, detail="You are not authorized to update this product")

    req = validate_payload(ProductUpdateRequest, payload)
    updates = product_fields(req)
    with pending_image(upload, settings) as image_path:
        if image_path:
            updates["image"] = image_path
        # The merged record must still satisfy the collection schema
        merged = {k: v for k, v in product.items() if k in ProductSchema.model_fields}
        merged.update(updates)
        validated = ProductSchema(**merged)
        updates = {k: getattr(validated, k) for k in updates}

        if not updates:
            return success("Product updated successfully", {"product": serialize_doc(product)})
        updated = update_document(db, "product", {"_id": product_id}, updates)
    return success("Product updated successfully", {"product": serialize_doc(updated)})


# Only the body read is awaited; database and file work runs in the threadpool
@router.post("/")
async def create_product(
    request: Request,
    user=Depends(require_roles("admin", "user")),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    payload, upload = await read_product_payload(request)
    return await run_in_threadpool(_create_product, user, db, settings, payload, upload)


@router.patch("/{id}")
async def update_product(
    id: str,
    request: Request,
    user=Depends(require_roles("admin", "superAdmin", "user")),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    payload, upload = await read_product_payload(request)
    return await run_in_threadpool(_update_product, id, user, db, settings, payload, upload)


@router.patch("/{id}/status")
def update_product_status(
    id: str,
    req: ProductStatusRequest,
    user=Depends(require_roles("admin", "superAdmin")),
    db: Database = Depends(get_db),
):
    # No ownership check here, unlike create/update
    updated = update_document(db, "product", {"_id": to_obj_id(id)}, {"status": req.status})
    if not updated:
        raise HTTPException(status_code=404, detail="Product not found")
    return success("Product status updated successfully", {"product": serialize_doc(updated)})


@router.delete("/product/{id}")
def delete_product(
    id: str,
    user=Depends(require_roles("admin", "superAdmin")),
    db: Database = Depends(get_db),
):
    updated = update_document(db, "product", {"_id": to_obj_id(id)}, {"status": "deleted"}, projection={"_id": 1})
    if not updated:
        raise HTTPException(status_code=404, detail="Product not found")
    return success("Product deleted successfully")
