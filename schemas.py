"""
Database Schemas for the store backend

Each Pydantic model typically maps to a MongoDB collection named after the
lowercased class name (e.g., Product -> "product"). Embedded models are used
for nested fields (order items, shipping address, payment result).
Field names follow the storefront's camelCase wire format.
"""

from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal, Dict
from datetime import datetime

OrderStatus = Literal["pending", "processing", "shipped", "delivered", "cancelled"]

# ------------ Auth & User ------------
class UserCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=6)

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"

# ------------ Products ------------
class ProductCreate(BaseModel):
    name: str
    image: str
    images: List[str] = []
    brand: str
    category: str
    description: str
    price: float = Field(0, ge=0)
    countInStock: int = Field(0, ge=0)
    tags: List[str] = []
    sizes: List[str] = []
    colors: List[str] = []
    customAttributes: Dict[str, str] = {}

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    image: Optional[str] = None
    images: Optional[List[str]] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    countInStock: Optional[int] = Field(None, ge=0)
    tags: Optional[List[str]] = None
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None
    customAttributes: Optional[Dict[str, str]] = None

# ------------ Cart ------------
class CartAdd(BaseModel):
    productId: str
    quantity: int = Field(1, ge=1)
    selectedSize: Optional[str] = None
    selectedColor: Optional[str] = None

class CartUpdate(BaseModel):
    quantity: int
    selectedSize: Optional[str] = None
    selectedColor: Optional[str] = None

# ------------ Orders ------------
class LineRequest(BaseModel):
    """A line as submitted by the client. Prices sent along are ignored."""
    product: str
    qty: int = Field(..., ge=1)
    selectedSize: Optional[str] = None
    selectedColor: Optional[str] = None

class CartPayload(BaseModel):
    items: List[LineRequest] = []

class ShippingAddress(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    postalCode: Optional[str] = None
    country: Optional[str] = None

class OrderCreate(BaseModel):
    items: List[LineRequest] = []
    shippingAddress: Optional[ShippingAddress] = None
    paymentMethod: str = Field("razorpay", min_length=1)

class OrderItem(BaseModel):
    product: str
    name: str
    image: Optional[str] = None
    qty: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price captured when the order was placed")
    selectedSize: Optional[str] = None
    selectedColor: Optional[str] = None

class PaymentResult(BaseModel):
    razorpayPaymentId: str
    razorpayOrderId: str
    razorpaySignature: str

class Order(BaseModel):
    user: str
    orderItems: List[OrderItem]
    shippingAddress: ShippingAddress
    paymentMethod: str
    itemsPrice: float
    taxPrice: float
    shippingPrice: float
    totalPrice: float
    isPaid: bool = False
    paidAt: Optional[datetime] = None
    paymentResult: Optional[PaymentResult] = None
    razorpayOrderId: Optional[str] = None
    isDelivered: bool = False
    deliveredAt: Optional[datetime] = None
    status: OrderStatus = "pending"

class PaymentVerify(BaseModel):
    # Presence is checked by signature verification, not by the schema
    razorpayPaymentId: Optional[str] = None
    razorpayOrderId: Optional[str] = None
    razorpaySignature: Optional[str] = None

class OrderStatusUpdate(BaseModel):
    status: str
