from typing import Optional

from fastapi import APIRouter, Depends, File, UploadFile

from config import Settings
from database import get_settings
from envelope import success
from security import require_roles
from storage import save_image

router = APIRouter(prefix="/api/upload", tags=["upload"])


@router.post("/image", dependencies=[Depends(require_roles("admin", "superAdmin"))])
def upload_image(image: Optional[UploadFile] = File(None), settings: Settings = Depends(get_settings)):
    image_url = save_image(image, settings)
    return success("Image uploaded successfully", {"imageUrl": image_url})
