"""
Database Schemas for the furnishing catalogue

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercase of the class name (e.g., Product -> "product"). Request payload
models live next to the collection they feed.

Catalogue model: products point at their category both by id and by a copied
category name. The copy is what public filters use, so renaming a category
rewrites it on every matching product.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from validators import is_valid_url

ENQUIRY_STATUSES = ("pending", "contacted", "converted", "cancelled")


def unique_names(names: List[str]) -> List[str]:
    """Trim names and drop blanks and repeats, keeping first-seen order."""
    seen = []
    for name in names:
        name = name.strip()
        if name and name not in seen:
            seen.append(name)
    return seen


def blank_to_none(v):
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


def lower_email(v: Optional[str]) -> Optional[str]:
    return v.lower() if v else v


class Admin(BaseModel):
    """
    Admin accounts
    Collection: "admin"
    """
    username: str = Field(..., description="Unique, stored lowercase")
    password_hash: str = Field(..., description="BCrypt hash of the password")
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    is_active: bool = Field(True)
    last_login: Optional[datetime] = None

    @field_validator("username")
    @classmethod
    def _lower_username(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email(cls, v):
        return blank_to_none(v)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: Optional[str]) -> Optional[str]:
        return lower_email(v)


class Category(BaseModel):
    """
    Categories collection schema
    Collection: "category"
    """
    name: str = Field(..., min_length=1, description="Unique category name")
    description: Optional[str] = None
    subcategories: List[str] = Field(default_factory=list, description="Ordered, unique names")
    image_url: Optional[str] = None
    display_order: int = Field(0, description="Ascending sort key for menus")
    is_active: bool = Field(True)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Category name is required")
        return v

    @field_validator("subcategories")
    @classmethod
    def _unique_subcategories(cls, v: List[str]) -> List[str]:
        return unique_names(v)


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    subcategories: Optional[List[str]] = None
    image_url: Optional[str] = None
    display_order: Optional[int] = None
    is_active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Category name cannot be empty")
        return v

    @field_validator("subcategories")
    @classmethod
    def _unique_subcategories(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return unique_names(v) if v is not None else v


class SubcategoryRequest(BaseModel):
    subcategory: Optional[str] = None


class Faq(BaseModel):
    question: Optional[str] = None
    answer: Optional[str] = None


class HowToUse(BaseModel):
    title: Optional[str] = None
    points: List[str] = Field(default_factory=list)


class ProductIn(BaseModel):
    """Create/update payload for products. Every field is optional."""
    title: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    category_id: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    original_price: Optional[float] = Field(None, ge=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    featured: Optional[bool] = None
    images: Optional[List[str]] = None
    material_used: Optional[List[str]] = None
    color_and_texture: Optional[List[str]] = None
    faqs: Optional[List[Faq]] = None
    product_guide: Optional[str] = None
    how_to_use: Optional[HowToUse] = None
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def _check_prices_and_images(self):
        if self.original_price and self.discounted_price and self.discounted_price > self.original_price:
            raise ValueError("Discounted price cannot be greater than original price")
        for i, url in enumerate(self.images or [], start=1):
            if not is_valid_url(url):
                raise ValueError(f"Image {i}: Invalid URL format")
        return self


class Product(BaseModel):
    """
    Products collection schema
    Collection: "product"
    """
    title: Optional[str] = Field(None, description="Product title")
    slug: Optional[str] = Field(None, description="URL-safe identifier derived from the title")
    description: Optional[str] = None
    category_id: Optional[str] = Field(None, description="Category id, stored as ObjectId")
    category: Optional[str] = Field(None, description="Copied category name")
    subcategory: Optional[str] = None
    original_price: Optional[float] = Field(None, ge=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    featured: bool = Field(False)
    images: List[str] = Field(default_factory=list)
    material_used: List[str] = Field(default_factory=list)
    color_and_texture: List[str] = Field(default_factory=list)
    faqs: List[Faq] = Field(default_factory=list)
    product_guide: Optional[str] = None
    how_to_use: HowToUse = Field(default_factory=HowToUse)
    is_active: bool = Field(True, description="False once soft deleted")


class Banner(BaseModel):
    """
    Banners collection schema
    Collection: "banner"
    """
    title: Optional[str] = None
    subtitle: Optional[str] = None
    category: Optional[str] = Field(None, description="Free-form category tag")
    image_url: Optional[str] = None
    is_active: bool = Field(True)


class BannerUpdate(BaseModel):
    title: Optional[str] = None
    subtitle: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    is_active: Optional[bool] = None


class EnquiryItem(BaseModel):
    product_id: Optional[str] = Field(None, description="Product id, dropped when not a valid ObjectId")
    title: str = Field(..., min_length=1)
    selected_color_texture: Optional[str] = None
    quantity: int = Field(1, ge=1)
    price_at_time: Optional[float] = Field(None, ge=0)


class Enquiry(BaseModel):
    """
    Customer enquiries
    Collection: "enquiry"
    """
    user_name: str
    user_phone: str
    user_email: Optional[EmailStr] = None
    user_address: Optional[str] = None
    items: List[EnquiryItem]
    status: str = Field("pending", description="pending|contacted|converted|cancelled")
    email_sent: bool = Field(False)
    admin_notes: Optional[str] = None


class EnquiryRequest(BaseModel):
    # required-field checks happen in the handler
    user_name: Optional[str] = None
    user_phone: Optional[str] = None
    user_email: Optional[EmailStr] = None
    user_address: Optional[str] = None
    items: Optional[List[dict]] = None

    @field_validator("user_email", mode="before")
    @classmethod
    def _blank_email(cls, v):
        return blank_to_none(v)

    @field_validator("user_email")
    @classmethod
    def _lower_email(cls, v: Optional[str]) -> Optional[str]:
        return lower_email(v)


class EnquiryStatusUpdate(BaseModel):
    status: str
    admin_notes: Optional[str] = None
