import logging
import math
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from fastapi import BackgroundTasks, Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import get_current_admin, hash_password, make_token, verify_password
from config import settings
from database import create_document, ensure_indexes, get_db, get_documents, now, serialize, update_document
from errors import ApiError, Conflict, NotFound, Unauthorized, ValidationError
from media import MAX_FILES, S3Storage, check_image, get_storage, process_upload
from notifications import EnquiryMailer, dispatch_enquiry_email, get_mailer
from ratelimit import api_limiter, enquiry_limiter, login_limiter
from schemas import (
    ENQUIRY_STATUSES, Admin, Banner, BannerUpdate, Category, CategoryUpdate, Enquiry, EnquiryItem,
    EnquiryRequest, EnquiryStatusUpdate, Product, ProductIn, SubcategoryRequest, blank_to_none, lower_email,
)
from validators import (
    is_object_id, make_slug, sanitize_input, to_object_id, validate_pagination, validate_phone,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    db_provider = app.dependency_overrides.get(get_db, get_db)
    try:
        ensure_indexes(db_provider())
        logger.info("Database indexes ensured")
    except Exception:
        logger.exception("Database connection failed")
    yield


app = FastAPI(
    title="Furnishing Catalogue API",
    version="1.0.0",
    lifespan=lifespan,
    dependencies=[Depends(api_limiter)],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============ Error envelope ============
@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == 404 and not isinstance(exc, ApiError):
        message = "Route not found"
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        parts.append(f"{loc}: {err.get('msg')}" if loc else err.get("msg"))
    return JSONResponse(status_code=400, content={"success": False, "message": "; ".join(parts) or "Validation error"})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"success": False, "message": "Duplicate value error"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "message": str(exc) or "Something went wrong"})


# Helpers
def ok(data=None, message: str = None, **extra) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body


def oid(id_str: str, what: str = "Record") -> ObjectId:
    _id = to_object_id(id_str)
    if _id is None:
        raise NotFound(f"{what} not found")
    return _id


@app.get("/api/health")
def health():
    return ok(message="Server is running", timestamp=datetime.now(timezone.utc).isoformat())


# ============ Admin Auth ============
class LoginAdmin(BaseModel):
    username: str
    password: str


class CreateAdmin(BaseModel):
    username: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email(cls, v):
        return blank_to_none(v)

    @field_validator("email")
    @classmethod
    def _lower_email(cls, v: Optional[str]) -> Optional[str]:
        return lower_email(v)


class ChangePassword(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=6)


def admin_public(admin: dict) -> dict:
    return {
        "id": str(admin["_id"]),
        "username": admin.get("username"),
        "full_name": admin.get("full_name"),
        "email": admin.get("email"),
        "last_login": admin.get("last_login"),
    }


@app.post("/api/admin/login", dependencies=[Depends(login_limiter)])
def login_admin(payload: LoginAdmin, db: Database = Depends(get_db)):
    admin = db["admin"].find_one({"username": payload.username.strip().lower()})
    # same message for unknown user, inactive account and wrong password
    if not admin or not admin.get("is_active", True) or not verify_password(payload.password, admin.get("password_hash")):
        raise Unauthorized("Invalid credentials")

    admin = update_document(db, "admin", admin["_id"], {"last_login": now()})
    token = make_token(admin["_id"], admin["username"])
    logger.info("Admin %s logged in", admin["username"])
    return ok(token=token, admin=admin_public(admin))


@app.post("/api/admin/create", status_code=201)
def create_admin(payload: CreateAdmin, db: Database = Depends(get_db), current: dict = Depends(get_current_admin)):
    username = payload.username.strip().lower()
    if db["admin"].find_one({"username": username}):
        raise Conflict("Admin already exists")

    doc = Admin(
        username=username,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
        email=payload.email,
    )
    try:
        _id = create_document(db, "admin", doc)
    except DuplicateKeyError:
        raise Conflict("Admin already exists")
    logger.info("Admin %s created by %s", username, current["username"])
    admin = db["admin"].find_one({"_id": ObjectId(_id)})
    return ok(message="Admin created successfully", admin=admin_public(admin))


@app.get("/api/admin/verify")
def verify_admin(current: dict = Depends(get_current_admin)):
    return ok(admin=admin_public(current))


@app.put("/api/admin/password")
def change_password(payload: ChangePassword, db: Database = Depends(get_db), current: dict = Depends(get_current_admin)):
    if not verify_password(payload.current_password, current.get("password_hash")):
        raise Unauthorized("Current password is incorrect")
    update_document(db, "admin", current["_id"], {"password_hash": hash_password(payload.new_password)})
    return ok(message="Password updated successfully")


# ============ Category Endpoints ============
@app.get("/api/categories")
def list_categories(include_inactive: bool = Query(False, alias="includeInactive"), db: Database = Depends(get_db)):
    flt = {} if include_inactive else {"is_active": True}
    items = get_documents(db, "category", flt, sort=[("display_order", ASCENDING), ("name", ASCENDING)])
    return ok(serialize(items))


@app.get("/api/categories/subcategories")
def list_subcategories(db: Database = Depends(get_db)):
    cats = db["category"].find({"is_active": True}, {"name": 1, "subcategories": 1})
    return ok({c["name"]: c.get("subcategories", []) for c in cats})


@app.get("/api/categories/{category_id}")
def get_category(category_id: str, db: Database = Depends(get_db)):
    doc = db["category"].find_one({"_id": oid(category_id, "Category")})
    if not doc:
        raise NotFound("Category not found")
    return ok(serialize(doc))


@app.post("/api/categories", status_code=201, dependencies=[Depends(get_current_admin)])
def create_category(category: Category, db: Database = Depends(get_db)):
    try:
        _id = create_document(db, "category", category)
    except DuplicateKeyError:
        raise Conflict("Category name already exists")
    return ok(serialize(db["category"].find_one({"_id": ObjectId(_id)})))


@app.put("/api/categories/{category_id}", dependencies=[Depends(get_current_admin)])
def update_category(category_id: str, payload: CategoryUpdate, db: Database = Depends(get_db)):
    _id = oid(category_id, "Category")
    old = db["category"].find_one({"_id": _id})
    if not old:
        raise NotFound("Category not found")

    changes = payload.model_dump(exclude_unset=True)
    if changes.get("subcategories") is not None:
        dropped = set(old.get("subcategories", [])) - set(changes["subcategories"])
        if dropped:
            count = db["product"].count_documents({"category": old["name"], "subcategory": {"$in": list(dropped)}})
            if count > 0:
                raise Conflict(f"Cannot delete subcategory. {count} products exist in this subcategory.")
    try:
        updated = update_document(db, "category", _id, changes)
    except DuplicateKeyError:
        raise Conflict("Category name already exists")

    new_name = changes.get("name")
    if new_name and new_name != old["name"]:
        # idempotent, keyed on the old name
        res = db["product"].update_many(
            {"category": old["name"]},
            {"$set": {"category": new_name, "updated_at": now()}},
        )
        logger.info("Category %r renamed to %r, %d products updated", old["name"], new_name, res.modified_count)
    return ok(serialize(updated))


@app.delete("/api/categories/{category_id}", dependencies=[Depends(get_current_admin)])
def delete_category(category_id: str, db: Database = Depends(get_db)):
    _id = oid(category_id, "Category")
    category = db["category"].find_one({"_id": _id})
    if not category:
        raise NotFound("Category not found")

    count = db["product"].count_documents({"category": category["name"]})
    if count > 0:
        raise Conflict(f"Cannot delete category. {count} products exist in this category.")
    db["category"].delete_one({"_id": _id})
    return ok(message="Category deleted successfully")


@app.post("/api/categories/{category_id}/subcategory", dependencies=[Depends(get_current_admin)])
def add_subcategory(category_id: str, payload: SubcategoryRequest, db: Database = Depends(get_db)):
    name = (payload.subcategory or "").strip()
    if not name:
        raise ValidationError("Subcategory name is required")
    _id = oid(category_id, "Category")
    category = db["category"].find_one({"_id": _id})
    if not category:
        raise NotFound("Category not found")

    subs = category.get("subcategories", [])
    if name in subs:
        raise Conflict("Subcategory already exists")
    updated = update_document(db, "category", _id, {"subcategories": subs + [name]})
    return ok(serialize(updated))


@app.delete("/api/categories/{category_id}/subcategory", dependencies=[Depends(get_current_admin)])
def remove_subcategory(category_id: str, payload: SubcategoryRequest, db: Database = Depends(get_db)):
    name = (payload.subcategory or "").strip()
    if not name:
        raise ValidationError("Subcategory name is required")
    _id = oid(category_id, "Category")
    category = db["category"].find_one({"_id": _id})
    if not category:
        raise NotFound("Category not found")

    count = db["product"].count_documents({"category": category["name"], "subcategory": name})
    if count > 0:
        raise Conflict(f"Cannot delete subcategory. {count} products exist in this subcategory.")
    subs = [s for s in category.get("subcategories", []) if s != name]
    updated = update_document(db, "category", _id, {"subcategories": subs})
    return ok(serialize(updated))


# ============ Product Endpoints ============
SORT_ALIASES = {"createdAt": "created_at", "updatedAt": "updated_at"}


def format_product(p: dict) -> dict:
    """Public product shape: every field present, empty values instead of missing ones."""
    how_to_use = p.get("how_to_use") or {}
    return {
        "id": str(p["_id"]),
        "title": p.get("title") or "",
        "slug": p.get("slug") or "",
        "description": p.get("description") or "",
        "category_id": str(p["category_id"]) if p.get("category_id") else "",
        "category": p.get("category") or "",
        "subcategory": p.get("subcategory") or "",
        "original_price": p.get("original_price") if isinstance(p.get("original_price"), (int, float)) else 0,
        "discounted_price": p.get("discounted_price") if isinstance(p.get("discounted_price"), (int, float)) else 0,
        "featured": bool(p.get("featured")),
        "images": p.get("images") or [],
        "material_used": p.get("material_used") or [],
        "color_and_texture": p.get("color_and_texture") or [],
        "faqs": p.get("faqs") or [],
        "product_guide": p.get("product_guide") or "",
        "how_to_use": {
            "title": how_to_use.get("title") or "",
            "points": how_to_use.get("points") or [],
        },
        "is_active": bool(p.get("is_active")),
        "created_at": p.get("created_at"),
        "updated_at": p.get("updated_at"),
    }


def parse_sort(sort: str) -> list:
    """Mongoose style sort string ("price -createdAt") to a pymongo sort list."""
    keys = []
    for token in re.split(r"[\s,]+", sort or ""):
        if not token:
            continue
        direction = DESCENDING if token.startswith("-") else ASCENDING
        field = token.lstrip("-+")
        keys.append((SORT_ALIASES.get(field, field), direction))
    if not keys:
        keys.append(("created_at", ASCENDING))
    if all(k != "_id" for k, _ in keys):
        keys.append(("_id", ASCENDING))
    return keys


def build_product_filter(category=None, subcategory=None, materials=None, min_price=None, max_price=None, search=None) -> dict:
    flt = {"is_active": True}
    if category:
        flt["category"] = category
    if subcategory:
        flt["subcategory"] = subcategory
    if materials:
        flt["material_used"] = {"$in": [m.strip() for m in materials.split(",") if m.strip()]}

    alternatives = []
    if min_price is not None or max_price is not None:
        bounds = {}
        if min_price is not None:
            bounds["$gte"] = min_price
        if max_price is not None:
            bounds["$lte"] = max_price
        # a product is in range when either of its prices is
        alternatives.append([{"discounted_price": dict(bounds)}, {"original_price": dict(bounds)}])
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        alternatives.append([{f: pattern} for f in ("title", "description", "category", "subcategory")])

    if len(alternatives) == 1:
        flt["$or"] = alternatives[0]
    elif alternatives:
        flt["$and"] = [{"$or": alt} for alt in alternatives]
    return flt


def product_fields(payload: ProductIn) -> dict:
    data = payload.model_dump(exclude_unset=True)
    if "category_id" in data and data["category_id"] is not None:
        cat_id = to_object_id(data["category_id"])
        if cat_id is None:
            raise ValidationError("Invalid category id")
        data["category_id"] = cat_id
    if data.get("title") and not data.get("slug"):
        data["slug"] = make_slug(data["title"])
    return data


@app.get("/api/products")
def list_products(db: Database = Depends(get_db)):
    items = get_documents(db, "product", {"is_active": True})
    return ok([format_product(p) for p in items], message="Products fetched successfully")


@app.get("/api/products/featured")
def featured_products(db: Database = Depends(get_db)):
    items = get_documents(db, "product", {"featured": True, "is_active": True})
    return ok([format_product(p) for p in items], message="Featured products fetched successfully")


@app.get("/api/products/filter")
def filter_products(
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    materials: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice"),
    max_price: Optional[float] = Query(None, alias="maxPrice"),
    search: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sort: str = "createdAt",
    db: Database = Depends(get_db),
):
    page, limit = validate_pagination(page, limit)
    flt = build_product_filter(category, subcategory, materials, min_price, max_price, search)

    cursor = db["product"].find(flt).sort(parse_sort(sort)).skip((page - 1) * limit).limit(limit)
    items = [format_product(p) for p in cursor]
    total = db["product"].count_documents(flt)
    return ok(
        items,
        message="Filtered products fetched successfully",
        pagination={"total": total, "page": page, "limit": limit, "pages": math.ceil(total / limit)},
    )


@app.get("/api/products/{id_or_slug}")
def get_product(id_or_slug: str, db: Database = Depends(get_db)):
    if is_object_id(id_or_slug):
        query = {"_id": ObjectId(id_or_slug)}
    else:
        query = {"slug": id_or_slug}
    doc = db["product"].find_one({**query, "is_active": True})
    if not doc:
        raise NotFound("Product not found")
    return ok(format_product(doc), message="Product fetched successfully")


@app.post("/api/products", status_code=201, dependencies=[Depends(get_current_admin)])
def create_product(payload: ProductIn, db: Database = Depends(get_db)):
    data = product_fields(payload)
    category_id = data.pop("category_id", None)
    doc = Product(**data).model_dump()
    doc["category_id"] = category_id
    _id = create_document(db, "product", doc)
    return ok(format_product(db["product"].find_one({"_id": ObjectId(_id)})), message="Product created successfully")


@app.put("/api/products/{product_id}", dependencies=[Depends(get_current_admin)])
def update_product(product_id: str, payload: ProductIn, db: Database = Depends(get_db)):
    _id = oid(product_id, "Product")
    existing = db["product"].find_one({"_id": _id})
    if not existing:
        raise NotFound("Product not found")

    changes = product_fields(payload)
    merged = {**existing, **changes}
    original, discounted = merged.get("original_price"), merged.get("discounted_price")
    if original and discounted and discounted > original:
        raise ValidationError("Discounted price cannot be greater than original price")

    updated = update_document(db, "product", _id, changes)
    return ok(format_product(updated), message="Product updated successfully")


@app.delete("/api/products/{product_id}", dependencies=[Depends(get_current_admin)])
def delete_product(product_id: str, db: Database = Depends(get_db)):
    _id = oid(product_id, "Product")
    if update_document(db, "product", _id, {"is_active": False}) is None:
        raise NotFound("Product not found")
    return ok(message="Product deleted successfully")


# ============ Banner Endpoints ============
@app.get("/api/banners")
def list_banners(db: Database = Depends(get_db)):
    return ok(serialize(get_documents(db, "banner", {"is_active": True})))


@app.post("/api/banners", status_code=201, dependencies=[Depends(get_current_admin)])
def create_banner(banner: Banner, db: Database = Depends(get_db)):
    _id = create_document(db, "banner", banner)
    return ok(serialize(db["banner"].find_one({"_id": ObjectId(_id)})))


@app.put("/api/banners/{banner_id}", dependencies=[Depends(get_current_admin)])
def update_banner(banner_id: str, payload: BannerUpdate, db: Database = Depends(get_db)):
    updated = update_document(db, "banner", oid(banner_id, "Banner"), payload.model_dump(exclude_unset=True))
    if updated is None:
        raise NotFound("Banner not found")
    return ok(serialize(updated))


@app.delete("/api/banners/{banner_id}", dependencies=[Depends(get_current_admin)])
def delete_banner(banner_id: str, db: Database = Depends(get_db)):
    res = db["banner"].delete_one({"_id": oid(banner_id, "Banner")})
    if res.deleted_count == 0:
        raise NotFound("Banner not found")
    return ok(message="Banner deleted successfully")


# ============ Enquiry Endpoints ============
def clean_item(raw: dict) -> EnquiryItem:
    if not raw.get("title"):
        raise ValidationError("Product title is required for each item")
    fields = {k: v for k, v in raw.items() if k in EnquiryItem.model_fields and v is not None}
    for key in ("title", "selected_color_texture"):
        if isinstance(fields.get(key), str):
            fields[key] = sanitize_input(fields[key])
    try:
        return EnquiryItem(**fields)
    except PydanticValidationError as e:
        err = e.errors()[0]
        raise ValidationError(f"Invalid item {err['loc'][0]}: {err['msg']}")


@app.post("/api/enquiry", dependencies=[Depends(enquiry_limiter)])
def submit_enquiry(
    payload: EnquiryRequest,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    mailer: EnquiryMailer = Depends(get_mailer),
):
    user_name = sanitize_input(payload.user_name or "")
    user_phone = (payload.user_phone or "").strip()
    if not user_name or not user_phone:
        raise ValidationError("Name and phone are required")
    if not payload.items:
        raise ValidationError("At least one product item is required")
    items = [clean_item(raw) for raw in payload.items]

    phone_ok, cleaned_phone = validate_phone(user_phone)

    enquiry = Enquiry(
        user_name=user_name,
        user_phone=cleaned_phone if phone_ok else user_phone,
        user_email=payload.user_email,
        user_address=sanitize_input(payload.user_address) or None,
        items=items,
    )
    doc = enquiry.model_dump()
    for it in doc["items"]:
        product_id = to_object_id(it.pop("product_id", None))
        if product_id is not None:
            it["product_id"] = product_id
    enquiry_id = ObjectId(create_document(db, "enquiry", doc))

    mail_data = {
        "enquiry_id": str(enquiry_id),
        "user_name": doc["user_name"],
        "user_phone": doc["user_phone"],
        "user_email": doc["user_email"],
        "user_address": doc["user_address"],
        "items": doc["items"],
    }
    background_tasks.add_task(dispatch_enquiry_email, db, mailer, enquiry_id, mail_data)

    return ok(message="Enquiry sent successfully", enquiry_id=str(enquiry_id))


@app.get("/api/enquiry/all", dependencies=[Depends(get_current_admin)])
def list_enquiries(db: Database = Depends(get_db)):
    enquiries = get_documents(db, "enquiry", {}, sort=[("created_at", DESCENDING), ("_id", DESCENDING)])

    product_ids = {it["product_id"] for e in enquiries for it in e.get("items", []) if it.get("product_id")}
    products = {}
    if product_ids:
        for p in db["product"].find({"_id": {"$in": list(product_ids)}}, {"title": 1, "category": 1}):
            products[p["_id"]] = {"id": str(p["_id"]), "title": p.get("title"), "category": p.get("category")}

    for e in enquiries:
        for it in e.get("items", []):
            if it.get("product_id") in products:
                it["product_id"] = products[it["product_id"]]
    return ok(serialize(enquiries))


@app.put("/api/enquiry/{enquiry_id}/status", dependencies=[Depends(get_current_admin)])
def update_enquiry_status(enquiry_id: str, payload: EnquiryStatusUpdate, db: Database = Depends(get_db)):
    if payload.status not in ENQUIRY_STATUSES:
        raise ValidationError(f"Invalid status. Allowed values: {', '.join(ENQUIRY_STATUSES)}")
    updated = update_document(
        db, "enquiry", oid(enquiry_id, "Enquiry"),
        {"status": payload.status, "admin_notes": payload.admin_notes},
    )
    if updated is None:
        raise NotFound("Enquiry not found")
    return ok(serialize(updated))


# ============ Upload Endpoints ============
@app.post("/api/upload/single", dependencies=[Depends(get_current_admin)])
def upload_single(image: Optional[UploadFile] = File(None), storage: S3Storage = Depends(get_storage)):
    if image is None:
        raise ValidationError("No file uploaded")
    result = process_upload(image, storage)
    return ok(message="Image uploaded successfully", image_url=result["url"], key=result["key"])


@app.post("/api/upload/multiple", dependencies=[Depends(get_current_admin)])
def upload_multiple(images: Optional[List[UploadFile]] = File(None), storage: S3Storage = Depends(get_storage)):
    if not images:
        raise ValidationError("No files uploaded")
    if len(images) > MAX_FILES:
        raise ValidationError(f"At most {MAX_FILES} files can be uploaded at once")
    for image in images:
        check_image(image)
    urls = [process_upload(image, storage)["url"] for image in images]
    return ok(message="Images uploaded successfully", image_urls=urls)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
