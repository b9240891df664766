from pydantic import BaseModel, Field, EmailStr
from typing import Any, Optional, List, Dict, Literal

PaymentMethod = Literal["credit_card", "paypal", "bank_transfer"]
OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]

# Collection: product
class ProductIn(BaseModel):
    name: str = Field(..., min_length=3, description="Product name")
    description: str = Field(..., min_length=10, description="Product description")
    price: float = Field(..., gt=0, description="Unit price in dollars")
    compare_price: Optional[float] = Field(None, ge=0, description="Reference price shown struck through")
    images: List[str] = Field(default_factory=list, description="Image URLs")
    category: str = Field(..., description="Category id")
    inventory: int = Field(0, ge=0, description="Units in stock")
    sku: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    specifications: Dict[str, str] = Field(default_factory=dict)
    is_published: bool = True
    is_featured: bool = False

class ProductOut(ProductIn):
    id: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

# Collection: category
class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    image: Optional[str] = None
    parent: Optional[str] = Field(None, description="Parent category id")
    is_active: bool = True

class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    parent: Optional[str] = None
    is_active: Optional[bool] = None

class CategoryOut(CategoryIn):
    id: str
    slug: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

# Collection: user (read-only, provisioned elsewhere)
class UserOut(BaseModel):
    id: str
    name: str
    email: EmailStr
    role: str = "user"

# Collection: order
class OrderItem(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)

class OrderLine(BaseModel):
    """Line item as stored on the order, with name and price as they were at purchase time."""
    product_id: str
    name: str
    price: float
    quantity: int

class ShippingAddress(BaseModel):
    name: str = Field(..., min_length=1)
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)

class OrderIn(BaseModel):
    items: List[OrderItem] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    payment_details: Optional[Dict[str, Any]] = None
    notes: Optional[str] = None

class OrderOut(BaseModel):
    id: str
    user_id: str
    items: List[OrderLine]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    payment_details: Optional[Dict[str, Any]] = None
    subtotal: float
    tax: float
    shipping: float
    total: float
    notes: Optional[str] = None
    status: OrderStatus = "pending"
    tracking_number: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    tracking_number: Optional[str] = None
