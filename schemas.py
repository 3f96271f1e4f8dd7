"""
Database Schemas for the storefront

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercase class name. Example: class Product -> "product" collection.

Nested models (variants, order items, addresses) are embedded documents and
have no collection of their own.

Use these models in your API for validation before writing to MongoDB.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

VariantType = Literal["color", "size", "text", "dropdown"]
AddonType = Literal["checkbox", "radio", "quantity"]
UserRole = Literal["user", "admin", "order admin", "dev admin"]

# -----------------
# Catalog
# -----------------

class Specification(BaseModel):
    name: str
    value: str


class Category(BaseModel):
    name: str = Field(..., description="Category display name")
    slug: str = Field(..., description="URL-friendly identifier")
    description: Optional[str] = Field("", description="Short description of the category")
    image: Optional[str] = None
    subcategories: List[str] = Field(default_factory=list)


class VariantOption(BaseModel):
    label: str = Field(..., description="Display label, e.g. 'Red'")
    value: str = Field(..., description="Stored value, e.g. '#ff0000'")
    price_modifier: float = Field(0, description="Added to the base price when selected")
    stock: int = Field(0, description="Units available for this option")
    image: Optional[str] = None
    sku: Optional[str] = None
    custom_properties: Dict[str, Any] = Field(default_factory=dict)
    specifications: List[Specification] = Field(default_factory=list)
    sub_variants: List["Variant"] = Field(default_factory=list, description="Variants nested under this option")


class Variant(BaseModel):
    name: str = Field(..., description="Attribute name, e.g. 'Color'")
    type: VariantType = "dropdown"
    required: bool = False
    options: List[VariantOption] = Field(default_factory=list)


VariantOption.model_rebuild()


class AddonOption(BaseModel):
    label: str
    price: float = Field(..., ge=0)
    description: Optional[str] = None
    image: Optional[str] = None


class Addon(BaseModel):
    name: str = Field(..., description="e.g. 'Gift Wrapping'")
    description: Optional[str] = None
    type: AddonType = "checkbox"
    required: bool = False
    max_quantity: int = Field(1, ge=1)
    options: List[AddonOption] = Field(default_factory=list)


class Dimensions(BaseModel):
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None


class ShippingInfo(BaseModel):
    weight: Optional[float] = None
    dimensions: Dimensions = Field(default_factory=Dimensions)
    free_shipping: bool = False
    shipping_cost: float = Field(0, ge=0)
    estimated_delivery: Optional[str] = None
    return_policy: Optional[str] = None


class Product(BaseModel):
    name: str = Field(..., description="Product name")
    slug: str = Field(..., description="URL-friendly unique identifier")
    price: float = Field(..., ge=0, description="Base price")
    stock: int = Field(0, ge=0, description="Stock for products sold without variants")
    description: Optional[str] = Field(None, description="Marketing description")
    images: List[str] = Field(default_factory=list)
    category: Optional[str] = Field(None, description="Category slug")
    subcategories: List[str] = Field(default_factory=list)
    featured: bool = False
    rating: float = Field(0, ge=0, le=5)
    num_reviews: int = Field(0, ge=0)
    variants: List[Variant] = Field(default_factory=list)
    addons: List[Addon] = Field(default_factory=list)
    specifications: List[Specification] = Field(default_factory=list)
    shipping: ShippingInfo = Field(default_factory=ShippingInfo)


class Sale(BaseModel):
    name: str
    category_slugs: List[str] = Field(default_factory=list)
    product_ids: List[str] = Field(default_factory=list)
    ends_at: datetime
    discount_percent: int = Field(0, ge=0, le=95)
    active: bool = True

# ------------
# Order Models
# ------------

class OptionDetails(BaseModel):
    price_modifier: float = 0
    sku: Optional[str] = None
    custom_properties: Dict[str, Any] = Field(default_factory=dict)


class SelectedVariant(BaseModel):
    variant_name: str = Field(..., description="Variant name at this level, e.g. 'Color'")
    option_value: str = Field(..., description="Chosen option value or label")
    option_label: Optional[str] = None
    option_details: OptionDetails = Field(default_factory=OptionDetails)
    sub_variants: List["SelectedVariant"] = Field(default_factory=list)


SelectedVariant.model_rebuild()


class OrderItem(BaseModel):
    name: str = Field(..., description="Product name snapshot")
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Unit price at time of order")
    image: Optional[str] = None
    product: str = Field(..., description="Referenced product id (string)")
    sale_name: Optional[str] = None
    sale_percent: Optional[int] = None
    variants: List[SelectedVariant] = Field(default_factory=list)


class ShippingAddress(BaseModel):
    full_name: str
    address: str
    city: str
    postal_code: str
    country: str = "Pakistan"
    phone: Optional[str] = None


class PaymentResult(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class ShipmentTracking(BaseModel):
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    updated_at: Optional[datetime] = None


class Order(BaseModel):
    order_id: str
    user: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    order_items: List[OrderItem]
    shipping_address: ShippingAddress
    payment_method: str
    payment_result: PaymentResult = Field(default_factory=PaymentResult)
    items_price: float = Field(0, ge=0)
    shipping_price: float = Field(0, ge=0)
    tax_price: float = Field(0, ge=0)
    total_price: float = Field(0, ge=0)
    status: str = "ordered"
    is_paid: bool = False
    is_confirmed: bool = False
    is_shipped: bool = False
    is_delivered: bool = False
    is_cancelled: bool = False
    paid_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    shipping: ShipmentTracking = Field(default_factory=ShipmentTracking)

# -----------------
# Content
# -----------------

class Review(BaseModel):
    user_id: str
    user_name: str
    user_email: EmailStr
    user_image: str = ""
    product_id: str
    product_slug: str
    rating: int = Field(..., ge=1, le=5)
    comment: str
    images: List[str] = Field(default_factory=list)


class Blog(BaseModel):
    title: str
    slug: str
    content: str
    description: Optional[str] = None
    excerpt: Optional[str] = None
    image: Optional[str] = None
    author: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    published: bool = False


class TechnicalSpecs(BaseModel):
    project_type: str = ""
    completion: str = ""
    duration: str = ""
    team: str = ""


class ClientTestimonial(BaseModel):
    text: str = ""
    author: str = ""


class Project(BaseModel):
    title: str
    slug: str
    category: str
    style: str
    overview: str
    content: str = ""
    key_features: str = ""
    technical_specs: TechnicalSpecs = Field(default_factory=TechnicalSpecs)
    client_testimonial: ClientTestimonial = Field(default_factory=ClientTestimonial)
    images: List[str] = Field(default_factory=list)
    location: str = ""
    date: str
    featured: bool = False


class Testimonial(BaseModel):
    name: str
    title: str
    rating: int = Field(..., ge=1, le=5)
    text: str
    image: str
    featured: bool = False
    approved: bool = True

# -----------------
# Accounts
# -----------------

class User(BaseModel):
    name: str
    email: EmailStr
    phone: Optional[str] = None
    password: str = Field(..., description="bcrypt hash, never returned by the API")
    is_admin: bool = False
    avatar: Optional[str] = None
    role: UserRole = "user"
    address: Optional[str] = None
    wishlist: List[str] = Field(default_factory=list, description="Product ids")
    reset_password_token: Optional[str] = None
    reset_password_expire: Optional[datetime] = None


class Admin(BaseModel):
    name: str
    email: EmailStr
    password: str
    role: UserRole = "admin"

# -----------------
# Request payloads
# -----------------

class OrderCreate(BaseModel):
    user: Optional[str] = None
    customer_email: Optional[EmailStr] = None
    order_items: List[OrderItem] = Field(default_factory=list)
    shipping_address: Optional[ShippingAddress] = None
    payment_method: Optional[str] = None
    payment_result: PaymentResult = Field(default_factory=PaymentResult)
    items_price: float = Field(0, ge=0)
    shipping_price: float = Field(0, ge=0)
    tax_price: float = Field(0, ge=0)
    total_price: float = Field(0, ge=0)


class OrderUpdate(BaseModel):
    is_paid: Optional[bool] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None


class StatusUpdate(BaseModel):
    status: Optional[str] = None


class CancelRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cancellation_reason: str = Field("", alias="cancellationReason")


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
    featured: Optional[bool] = None
    images: Optional[List[str]] = None
    category: Optional[str] = None
    variants: Optional[List[Variant]] = None
    addons: Optional[List[Addon]] = None


class CategoryCreate(BaseModel):
    name: str
    slug: Optional[str] = None
    description: Optional[str] = ""
    image: Optional[str] = None
    subcategories: List[str] = Field(default_factory=list)


class SaleRequest(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    category_slugs: Optional[List[str]] = None
    product_ids: Optional[List[str]] = None
    ends_at: Optional[str] = None
    discount_percent: Optional[float] = None
    active: Optional[bool] = None


class SelectedAddon(BaseModel):
    addon_name: str
    option_label: str
    quantity: int = Field(1, ge=1)


class QuoteRequest(BaseModel):
    product: str = Field(..., description="Product slug or id")
    variants: List[SelectedVariant] = Field(default_factory=list)
    addons: List[SelectedAddon] = Field(default_factory=list)
    quantity: int = Field(1, ge=1)
    discount_percent: Optional[float] = Field(None, description="Overrides the active sale when given")


class ReviewCreate(BaseModel):
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[EmailStr] = None
    user_image: Optional[str] = None
    rating: Optional[int] = None
    comment: Optional[str] = None
    images: Optional[List[str]] = None


class BlogUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    description: Optional[str] = None
    excerpt: Optional[str] = None
    image: Optional[str] = None
    author: Optional[str] = None
    tags: Optional[List[str]] = None
    published: Optional[bool] = None


class ProjectCreate(BaseModel):
    title: str
    slug: Optional[str] = None
    category: str
    style: str
    overview: str
    content: str = ""
    key_features: str = ""
    technical_specs: TechnicalSpecs = Field(default_factory=TechnicalSpecs)
    client_testimonial: ClientTestimonial = Field(default_factory=ClientTestimonial)
    images: List[str] = Field(default_factory=list)
    location: str = ""
    date: str
    featured: bool = False


class ContactMessage(BaseModel):
    full_name: str
    email: EmailStr
    company: Optional[str] = None
    inquiry_type: Optional[str] = None
    budget_range: Optional[str] = None
    city_country: Optional[str] = None
    message: str
    contact_method: Optional[str] = None


class SignupRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    avatar: Optional[str] = None


class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str = Field(..., min_length=6)
    is_admin: bool = False


class UserUpdate(BaseModel):
    user_id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    is_admin: Optional[bool] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    avatar: Optional[str] = None


class ForgotPasswordRequest(BaseModel):
    email: Optional[str] = None


class ResetTokenRequest(BaseModel):
    token: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    token: Optional[str] = None
    password: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    user_id: Optional[str] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class WishlistRequest(BaseModel):
    user_id: Optional[str] = None
    product_id: Optional[str] = None
