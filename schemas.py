"""
Database Schemas for the shop administration backend

Each Pydantic model maps to a MongoDB collection (lowercased class name) and is
validated before a document is written.

Collections:
- user
- product
- order
"""
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

PRIVILEGED_ROLES = ("admin", "superAdmin")

Role = Literal["customer", "user", "admin", "superAdmin"]
UserStatus = Literal["active", "blocked", "deleted"]
ProductStatus = Literal["active", "inactive", "deleted"]
OrderStatus = Literal["pending", "paid", "shipped", "completed", "cancelled"]


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Email address, stored lower-cased")
    password: str = Field(..., description="BCrypt password hash")
    role: Role = Field("customer", description="customer | user | admin | superAdmin")
    status: UserStatus = Field("active", description="active | blocked | deleted")
    managerId: Optional[ObjectId] = Field(None, description="Admin managing this user")
    maxManagedUsers: int = Field(1, ge=0, description="Quota of active managed users")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return v.strip()

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.strip().lower()


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(..., min_length=1, description="Product name")
    image: str = Field(..., min_length=1, description="Upload path or image URL")
    admin: ObjectId = Field(..., description="Owning admin id")
    category: str = Field(..., min_length=1, description="Category")
    price: float = Field(..., ge=0, description="Unit price")
    description: Optional[str] = Field(None, description="Product description")
    colors: List[str] = Field(default_factory=list)
    sizes: List[str] = Field(default_factory=list)
    status: ProductStatus = Field("active")

    @field_validator("name", "category", "description")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v


class OrderItem(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    prod_id: ObjectId
    count: int = Field(..., ge=1)
    size: Optional[str] = None
    color: Optional[str] = None
    price: float = Field(..., ge=0, description="Unit price at time of order")


class Order(BaseModel):
    """
    Orders collection schema
    Collection name: "order"
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user: ObjectId = Field(..., description="Purchaser")
    items: List[OrderItem] = Field(..., min_length=1)
    address: str
    shipping: float = Field(..., ge=0)
    total: float = Field(..., ge=0)
    discount: float = Field(0, ge=0)
    notes: Optional[str] = None
    phoneNumber: str
    customerName: str
    status: OrderStatus = Field("pending")
    createdByAdmin: Optional[ObjectId] = Field(None, description="Admin placing the order on a customer's behalf")
