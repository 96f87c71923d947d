from datetime import datetime
from decimal import Decimal
from pydantic import AliasChoices, BaseModel, EmailStr, Field, model_validator
from typing import Any, Optional, List
from .models import Role


# --- AUTH ---
class SignupRequest(BaseModel):
    phone: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = Field(None, alias="fullName")
    country_code: Optional[str] = Field(None, alias="countryCode")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    confirm_password: Optional[str] = Field(None, alias="confirmPassword")

    class Config:
        populate_by_name = True


class LoginRequest(BaseModel):
    phone: Optional[str] = None
    password: Optional[str] = None
    country_code: Optional[str] = Field(None, alias="countryCode")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")

    class Config:
        populate_by_name = True


class UserOut(BaseModel):
    id: int
    phone: str
    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    message: str
    token: str
    user: UserOut


class CurrentUser(BaseModel):
    user_id: int
    phone: str
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


class MeOut(BaseModel):
    id: int
    phone: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    role: Role
    created_at: Optional[datetime] = None


class MeResponse(BaseModel):
    user: MeOut


# --- PROFILE ---
class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country_code: Optional[str] = Field(None, alias="countryCode")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")

    class Config:
        populate_by_name = True


class ProfileOut(BaseModel):
    id: int
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True


# --- CATEGORY ---
class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    image_url: Optional[str] = None


class CategoryCreate(CategoryBase):
    pass


class CategoryOut(CategoryBase):
    id: int
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True


# --- PRODUCT ---
class ProductBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    discount_price: Optional[Decimal] = Field(None, ge=0)
    stock: int = Field(0, ge=0)
    category_id: Optional[int] = None
    image_url: Optional[str] = None
    images: Optional[List[str]] = None
    media: Optional[List[Any]] = None
    brand: Optional[str] = None
    specifications: Optional[dict] = None
    is_featured: bool = False


class ProductCreate(ProductBase):
    pass


class ProductOut(ProductBase):
    id: int
    effective_price: Decimal
    created_at: Optional[datetime] = None
    class Config:
        from_attributes = True


class ProductBrief(BaseModel):
    id: int
    name: str
    image_url: Optional[str] = None
    class Config:
        from_attributes = True


# --- REVIEW ---
class ReviewCreate(BaseModel):
    product_id: Optional[int] = None
    rating: Optional[int] = None
    comment: Optional[str] = None


class ReviewOut(BaseModel):
    id: int
    product_id: int
    user_id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None
    full_name: Optional[str] = None
    product_name: Optional[str] = None
    class Config:
        from_attributes = True


# --- COUPON ---
class CouponCreate(BaseModel):
    code: str = Field(..., min_length=1)
    discount_percentage: Optional[int] = Field(None, gt=0, le=100)
    discount_amount: Optional[Decimal] = Field(None, ge=0)
    min_purchase_amount: Decimal = Field(Decimal("0"), ge=0)
    max_uses: Optional[int] = Field(None, gt=0)
    valid_from: Optional[datetime] = None
    valid_until: datetime
    is_active: bool = True

    @model_validator(mode="after")
    def check_discount(self):
        if self.discount_percentage is None and self.discount_amount is None:
            raise ValueError("discount_percentage or discount_amount is required")
        return self


class CouponOut(BaseModel):
    id: int
    code: str
    discount_percentage: Optional[int] = None
    discount_amount: Optional[Decimal] = None
    min_purchase_amount: Decimal
    max_uses: Optional[int] = None
    used_count: int
    valid_from: datetime
    valid_until: datetime
    is_active: bool
    class Config:
        from_attributes = True


class CouponValidate(BaseModel):
    code: str
    amount: Decimal = Decimal("0")


# --- ORDER ---
class OrderItemIn(BaseModel):
    product_id: int
    quantity: int = Field(..., gt=0)


class OrderCreate(BaseModel):
    items: List[OrderItemIn] = []
    shipping_address: Optional[str] = None
    phone: Optional[str] = None
    coupon_code: Optional[str] = None
    payment_method: Optional[str] = None


class OrderOut(BaseModel):
    id: int
    user_id: int
    total_amount: Decimal
    status: str
    shipping_address: str
    phone: str
    payment_method: Optional[str] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    coupon_code: Optional[str] = None
    discount_amount: Decimal = Decimal("0")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True


class OrderItemOut(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: Decimal
    product: Optional[ProductBrief] = None
    class Config:
        from_attributes = True


class OrderDetail(OrderOut):
    full_name: Optional[str] = None
    order_items: List[OrderItemOut] = Field(default_factory=list, validation_alias=AliasChoices("items", "order_items"))


class OrderStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)


class OrderTrackingUpdate(BaseModel):
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


# --- CHAT ---
class ChatMessageCreate(BaseModel):
    message: Optional[str] = None
    receiver_id: Optional[int] = None


class ChatMessageOut(BaseModel):
    id: int
    sender_id: int
    receiver_id: Optional[int] = None
    message: str
    is_from_admin: bool
    is_read: bool
    created_at: Optional[datetime] = None
    full_name: Optional[str] = None
    class Config:
        from_attributes = True


class MarkReadRequest(BaseModel):
    sender_id: Optional[int] = None


class UnreadCount(BaseModel):
    count: int


# --- ADMIN ---
class AdminStats(BaseModel):
    products: int
    orders: int
    revenue: Decimal
    messages: int
    customers: int
    reviews: int


class CustomerOut(ProfileOut):
    role: Optional[str] = None
