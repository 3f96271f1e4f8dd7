import logging
import re
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, NetworkTimeout, ServerSelectionTimeoutError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
import pricing
import stock_manager
from auth import (
    hash_password,
    is_valid_email,
    new_reset_token,
    public_user,
    require_admin,
    reset_password_problem,
    send_password_reset_email,
    verify_password,
)
from database import DatabaseTimeout, close, create_document, get_db, get_documents, to_object_id, utcnow
from order_status import OrderStatus, TransitionError, describe, parse_status, plan_transition
from schemas import (
    Blog,
    BlogUpdate,
    CancelRequest,
    Category,
    CategoryCreate,
    ChangePasswordRequest,
    ContactMessage,
    ForgotPasswordRequest,
    Order,
    OrderCreate,
    OrderUpdate,
    Product,
    ProductUpdate,
    Project,
    ProjectCreate,
    QuoteRequest,
    ResetPasswordRequest,
    ResetTokenRequest,
    Review,
    ReviewCreate,
    Sale,
    SaleRequest,
    SignupRequest,
    StatusUpdate,
    Testimonial,
    User,
    UserCreate,
    UserUpdate,
    WishlistRequest,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Storefront API", version="2.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

DB_TIMEOUT_MESSAGE = "Database connection timeout. Please try again."

# -----------------------
# Error envelope
# -----------------------

@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    msg = first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"success": False, "error": f"{loc}: {msg}" if loc else msg})


@app.exception_handler(TransitionError)
async def transition_error(request: Request, exc: TransitionError):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


@app.exception_handler(DatabaseTimeout)
@app.exception_handler(ServerSelectionTimeoutError)
@app.exception_handler(NetworkTimeout)
async def db_timeout(request: Request, exc: Exception):
    logger.error("Database timeout on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=504, content={"success": False, "error": DB_TIMEOUT_MESSAGE})


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

# Helpers

def to_str_id(doc: dict):
    if not doc:
        return doc
    d = doc.copy()
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def ok(data: Any = None, **extra) -> Dict[str, Any]:
    return {"success": True, "data": data, **extra}


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")


def by_id_or_slug(collection: str, ref: str) -> Optional[dict]:
    db = get_db()
    oid = to_object_id(ref)
    if oid is not None:
        doc = db[collection].find_one({"_id": oid})
        if doc:
            return doc
    return db[collection].find_one({"slug": ref})


def require_ref(value: Optional[str], what: str) -> str:
    if not value or value in ("undefined", "null"):
        raise HTTPException(status_code=400, detail=f"Valid {what} is required")
    return value


def paginate(page: int, limit: int, total: int) -> Dict[str, Any]:
    pages = (total + limit - 1) // limit if limit else 0
    return {"page": page, "limit": limit, "total": total, "pages": pages,
            "has_next": page < pages, "has_prev": page > 1}


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed

# -----------------------
# Seed helpers (idempotent)
# -----------------------

def _seed_payload():
    categories = [
        {"name": "Furniture", "slug": "furniture", "description": "Handmade tables, chairs and shelving"},
        {"name": "Lighting", "slug": "lighting", "description": "Pendants, lamps and sconces"},
        {"name": "Decor", "slug": "decor", "description": "Mirrors, vases and wall pieces"},
    ]

    products = [
        {
            "name": "Walnut Dining Table",
            "slug": "walnut-dining-table",
            "price": 85000,
            "category": "furniture",
            "description": "Solid walnut top on a steel base.",
            "featured": True,
            "variants": [
                {
                    "name": "Size",
                    "type": "size",
                    "required": True,
                    "options": [
                        {
                            "label": "4 Seater", "value": "4-seater", "price_modifier": 0, "stock": 5,
                            "sub_variants": [
                                {
                                    "name": "Finish",
                                    "options": [
                                        {
                                            "label": "Matte", "value": "matte", "price_modifier": 0, "stock": 3,
                                            "sub_variants": [
                                                {"name": "Legs", "options": [
                                                    {"label": "Black Steel", "value": "black", "price_modifier": 0, "stock": 2},
                                                    {"label": "Brass", "value": "brass", "price_modifier": 6000, "stock": 1},
                                                ]},
                                            ],
                                        },
                                        {"label": "Gloss", "value": "gloss", "price_modifier": 4000, "stock": 2},
                                    ],
                                },
                            ],
                        },
                        {"label": "6 Seater", "value": "6-seater", "price_modifier": 20000, "stock": 3},
                    ],
                },
            ],
            "addons": [
                {
                    "name": "Assembly",
                    "type": "checkbox",
                    "options": [{"label": "White Glove Assembly", "price": 3500}],
                },
            ],
        },
        {
            "name": "Rattan Pendant Lamp",
            "slug": "rattan-pendant-lamp",
            "price": 12500,
            "category": "lighting",
            "description": "Woven rattan shade, warm diffused light.",
            "featured": True,
            "variants": [
                {
                    "name": "Color",
                    "type": "color",
                    "options": [
                        {"label": "Natural", "value": "natural", "price_modifier": 0, "stock": 10},
                        {"label": "Black", "value": "black", "price_modifier": 1500, "stock": 6},
                    ],
                },
            ],
            "addons": [
                {
                    "name": "Bulb",
                    "type": "quantity",
                    "max_quantity": 4,
                    "options": [{"label": "Edison LED", "price": 900}],
                },
            ],
        },
        {
            "name": "Arched Wall Mirror",
            "slug": "arched-wall-mirror",
            "price": 18000,
            "stock": 8,
            "category": "decor",
            "description": "Slim brass frame, bevelled glass.",
        },
    ]
    return categories, products


def ensure_seeded() -> dict:
    created = {"categories": 0, "products": 0}
    db = get_db()
    categories, products = _seed_payload()
    if db["category"].count_documents({}) == 0:
        for c in categories:
            create_document("category", c)
        created["categories"] = len(categories)
    if db["product"].count_documents({}) == 0:
        for p in products:
            product = Product(**p)
            product.variants = assign_skus(product.slug, product.variants)
            create_document("product", product)
        created["products"] = len(products)
    return created


def ensure_indexes() -> None:
    db = get_db()
    db["product"].create_index("slug", unique=True)
    db["product"].create_index("price")
    db["order"].create_index("order_id", unique=True)
    db["order"].create_index([("created_at", -1)])
    db["order"].create_index([("is_paid", 1), ("is_delivered", 1), ("is_cancelled", 1)])
    db["review"].create_index([("user_id", 1), ("product_id", 1)], unique=True)
    db["review"].create_index([("product_slug", 1), ("created_at", -1)])
    db["user"].create_index("email", unique=True)
    db["blog"].create_index("slug", unique=True)
    db["project"].create_index("slug", unique=True)

# ---------
# Root/Test
# ---------

@app.get("/")
def read_root():
    return {"message": "Storefront API is running"}

@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        db = get_db()
        response["connection_status"] = "Connected"
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except DatabaseTimeout:
        response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"
    return response

@app.get("/api/health")
def health():
    started = time.monotonic()
    db = get_db()
    db.command("ping")
    return ok({
        "connected": True,
        "ping_ms": round((time.monotonic() - started) * 1000, 1),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })

@app.get("/api/orders/health")
def orders_health():
    started = time.monotonic()
    db = get_db()
    connect_ms = round((time.monotonic() - started) * 1000, 1)
    query_started = time.monotonic()
    total = db["order"].count_documents({})
    return ok({
        "database": {
            "connected": True,
            "connection_time_ms": connect_ms,
            "query_time_ms": round((time.monotonic() - query_started) * 1000, 1),
            "total_orders": total,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })

# ---------------
# Catalog Endpoints
# ---------------

def _sku(*parts: str) -> str:
    return re.sub(r"[^A-Z0-9-]", "-", "-".join(parts).upper())


def assign_skus(slug: str, variants, prefix=()):
    """Give every option without a SKU one derived from its path in the tree."""
    for variant in variants:
        for option in variant.options:
            parts = (*prefix, variant.name, option.value)
            if not option.sku:
                option.sku = _sku(slug, *parts)
            assign_skus(slug, option.sub_variants, parts)
    return variants


@app.get("/api/products")
def list_products(
    featured: Optional[bool] = None,
    category: Optional[str] = None,
    q: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    ids: Optional[str] = None,
    page: Optional[int] = None,
    limit: Optional[int] = None,
):
    db = get_db()

    if ids:
        raw_ids = [s.strip() for s in ids.split(",") if s.strip()]
        oids = [oid for oid in (to_object_id(i) for i in raw_ids) if oid is not None]
        if not oids:
            return ok([])
        found = {str(d["_id"]): d for d in db["product"].find({"_id": {"$in": oids}})}
        return ok([to_str_id(found[i]) for i in raw_ids if i in found])

    filter_dict: Dict[str, Any] = {}
    if featured:
        filter_dict["featured"] = True
    if category:
        if not db["category"].find_one({"slug": category}):
            return ok([], message="Category not found")
        filter_dict["category"] = category
    if q:
        filter_dict["name"] = {"$regex": re.escape(q), "$options": "i"}
    if min_price is not None or max_price is not None:
        price_filter = {}
        if min_price is not None:
            price_filter["$gte"] = min_price
        if max_price is not None:
            price_filter["$lte"] = max_price
        filter_dict["price"] = price_filter

    cursor = db["product"].find(filter_dict).sort([("created_at", -1), ("_id", -1)])
    if page and limit:
        page = max(1, page)
        limit = max(1, limit)
        cursor = cursor.skip((page - 1) * limit).limit(limit)
        total = db["product"].count_documents(filter_dict)
        return ok([to_str_id(d) for d in cursor], pagination=paginate(page, limit, total))
    if limit:
        cursor = cursor.limit(limit)
    return ok([to_str_id(d) for d in cursor])

class CreateProduct(Product):
    pass

@app.post("/api/products", status_code=201, dependencies=[Depends(require_admin)])
def create_product(payload: CreateProduct):
    db = get_db()
    if db["product"].find_one({"slug": payload.slug}):
        raise HTTPException(status_code=409, detail="A product with this slug already exists")
    if payload.category and not db["category"].find_one({"slug": payload.category}):
        raise HTTPException(status_code=400, detail="Category not found")

    payload.variants = assign_skus(payload.slug, payload.variants)
    try:
        inserted_id = create_document("product", payload)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="A product with this slug already exists")
    return ok(to_str_id(db["product"].find_one({"_id": to_object_id(inserted_id)})))

@app.get("/api/products/{slug}")
def get_product(slug: str):
    slug = require_ref(slug, "product slug")
    doc = by_id_or_slug("product", slug)
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    return ok(to_str_id(doc))

@app.put("/api/products/{slug}", dependencies=[Depends(require_admin)])
def update_product(slug: str, payload: ProductUpdate):
    db = get_db()
    changes = payload.model_dump(exclude_unset=True)
    if payload.variants is not None:
        changes["variants"] = [v.model_dump() for v in assign_skus(slug, payload.variants)]
    if changes.get("category") and not db["category"].find_one({"slug": changes["category"]}):
        raise HTTPException(status_code=400, detail="Category not found")
    changes["updated_at"] = utcnow()
    doc = db["product"].find_one_and_update({"slug": slug}, {"$set": changes}, return_document=ReturnDocument.AFTER)
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    return ok(to_str_id(doc))

@app.delete("/api/products/{slug}", dependencies=[Depends(require_admin)])
def delete_product(slug: str):
    doc = get_db()["product"].find_one_and_delete({"slug": slug})
    if not doc:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True, "message": "Product deleted successfully"}

@app.get("/api/categories")
def list_categories():
    db = get_db()
    counts = {c["_id"]: c["count"] for c in db["product"].aggregate([
        {"$group": {"_id": "$category", "count": {"$sum": 1}}},
    ])}
    docs = db["category"].find({}).sort("name", 1)
    return ok([{**to_str_id(d), "product_count": counts.get(d.get("slug"), 0)} for d in docs])

@app.post("/api/categories", status_code=201, dependencies=[Depends(require_admin)])
def create_category(payload: CategoryCreate):
    db = get_db()
    slug = payload.slug or slugify(payload.name)
    if not slug:
        raise HTTPException(status_code=400, detail="Category name is required")
    if db["category"].find_one({"slug": slug}):
        raise HTTPException(status_code=409, detail="A category with this slug already exists")
    data = payload.model_dump()
    data["slug"] = slug
    data["subcategories"] = [s for s in data["subcategories"] if s]
    inserted_id = create_document("category", Category(**data))
    return ok(to_str_id(db["category"].find_one({"_id": to_object_id(inserted_id)})))

# -------------------------
# Pricing endpoints (quote)
# -------------------------

@app.post("/api/pricing/quote")
def pricing_quote(payload: QuoteRequest):
    db = get_db()
    product = by_id_or_slug("product", payload.product)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")

    variants = product.get("variants") or []
    addons = product.get("addons") or []
    selections = [s.model_dump() for s in payload.variants]
    chosen_addons = [a.model_dump() for a in payload.addons]

    missing = pricing.missing_required_variants(variants, selections)
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required variants: {', '.join(missing)}")
    missing = pricing.missing_required_addons(addons, chosen_addons)
    if missing:
        raise HTTPException(status_code=400, detail=f"Missing required add-ons: {', '.join(missing)}")

    sale = None
    if payload.discount_percent is not None:
        pct = pricing.clamp_percent(payload.discount_percent)
    else:
        sale = pricing.find_active_sale(db, product, utcnow())
        pct = sale.get("discount_percent", 0) if sale else 0

    lines = pricing.addon_lines(addons, chosen_addons)
    breakdown = pricing.compose_price(
        product["price"],
        pricing.selected_modifiers(variants, selections),
        [(line.unit_price, line.quantity) for line in lines],
        pct,
    )
    if selections:
        stock = pricing.available_stock(variants, selections)
    else:
        stock = 0 if variants else product.get("stock", 0)

    return ok({
        **breakdown.model_dump(),
        "quantity": payload.quantity,
        "line_total": breakdown.total * payload.quantity,
        "addons": [line.model_dump() for line in lines],
        "available_stock": stock,
        "specifications": pricing.combined_specifications(product.get("specifications"), variants, selections),
        "sale": {"id": str(sale["_id"]), "name": sale.get("name"), "discount_percent": pct} if sale else None,
    })

# ---------------
# Sales
# ---------------

def _sale_fields(payload: SaleRequest) -> Dict[str, Any]:
    name = (payload.name or "").strip()
    if not name:
        raise HTTPException(status_code=400, detail="Sale name is required")
    categories = [c for c in payload.category_slugs or [] if c]
    products = [p for p in payload.product_ids or [] if p]
    if not categories and not products:
        raise HTTPException(status_code=400, detail="Provide at least one category slug or product id")
    ends_at = parse_datetime(payload.ends_at)
    if ends_at is None:
        raise HTTPException(status_code=400, detail="Invalid ends_at datetime")
    return {
        "name": name,
        "category_slugs": categories,
        "product_ids": products,
        "ends_at": ends_at,
        "discount_percent": pricing.clamp_discount(payload.discount_percent),
    }

@app.get("/api/sale")
def get_sale(mode: Optional[str] = None):
    db = get_db()
    query = {"active": True, "ends_at": {"$gt": utcnow()}}
    cursor = db["sale"].find(query).sort([("created_at", -1), ("_id", -1)])
    if mode == "all":
        return ok([to_str_id(s) for s in cursor])
    latest = next(iter(cursor.limit(1)), None)
    return ok(to_str_id(latest) if latest else None)

@app.post("/api/sale", dependencies=[Depends(require_admin)])
def create_sale(payload: SaleRequest):
    fields = _sale_fields(payload)
    fields["active"] = True
    # Concurrent sales are allowed; existing ones stay active.
    inserted_id = create_document("sale", Sale(**fields))
    logger.info("Created sale %s (%s%%)", fields["name"], fields["discount_percent"])
    return ok(to_str_id(get_db()["sale"].find_one({"_id": to_object_id(inserted_id)})))

@app.put("/api/sale", dependencies=[Depends(require_admin)])
def update_sale(payload: SaleRequest):
    if not payload.id:
        raise HTTPException(status_code=400, detail="Sale ID is required")
    fields = _sale_fields(payload)
    fields["active"] = payload.active if payload.active is not None else True
    fields["updated_at"] = utcnow()
    oid = to_object_id(payload.id)
    doc = None
    if oid is not None:
        doc = get_db()["sale"].find_one_and_update({"_id": oid}, {"$set": fields}, return_document=ReturnDocument.AFTER)
    if not doc:
        raise HTTPException(status_code=404, detail="Sale not found")
    return ok(to_str_id(doc))

# ---------------
# Reviews
# ---------------

@app.post("/api/products/{slug}/reviews")
def add_review(slug: str, payload: ReviewCreate):
    if not (payload.user_id and payload.user_name and payload.user_email and payload.rating and payload.comment):
        raise HTTPException(status_code=400, detail="All required fields must be provided")
    if payload.rating < 1 or payload.rating > 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")

    db = get_db()
    product = db["product"].find_one({"slug": slug})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    product_id = str(product["_id"])

    if db["review"].find_one({"user_id": payload.user_id, "product_id": product_id}):
        raise HTTPException(status_code=400, detail="You have already reviewed this product")

    review = Review(
        user_id=payload.user_id,
        user_name=payload.user_name,
        user_email=payload.user_email,
        user_image=payload.user_image or "",
        product_id=product_id,
        product_slug=slug,
        rating=payload.rating,
        comment=payload.comment,
        images=[img for img in payload.images or [] if isinstance(img, str) and img.strip()],
    )
    try:
        inserted_id = create_document("review", review)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="You have already reviewed this product")

    ratings = [r["rating"] for r in db["review"].find({"product_id": product_id}, {"rating": 1})]
    db["product"].update_one(
        {"_id": product["_id"]},
        {"$set": {"rating": sum(ratings) / len(ratings), "num_reviews": len(ratings), "updated_at": utcnow()}},
    )
    return {
        "success": True,
        "message": "Review added successfully",
        "data": to_str_id(db["review"].find_one({"_id": to_object_id(inserted_id)})),
    }

@app.get("/api/products/{slug}/reviews")
def list_reviews(slug: str):
    db = get_db()
    product = db["product"].find_one({"slug": slug})
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    reviews = [to_str_id(r) for r in db["review"].find({"product_id": str(product["_id"])}).sort([("created_at", -1), ("_id", -1)])]
    average = sum(r["rating"] for r in reviews) / len(reviews) if reviews else 0
    return ok({"reviews": reviews, "rating": average, "num_reviews": len(reviews)})

# ---------------
# Orders Endpoints
# ---------------

ORDER_ID_ALPHABET = string.ascii_uppercase + string.digits


def new_order_id() -> str:
    return "ORD_" + "".join(secrets.choice(ORDER_ID_ALPHABET) for _ in range(8))


def load_order(order_ref: str) -> dict:
    order_ref = require_ref(order_ref, "order ID")
    db = get_db()
    oid = to_object_id(order_ref)
    order = db["order"].find_one({"_id": oid}) if oid is not None else None
    if order is None:
        order = db["order"].find_one({"order_id": order_ref})
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def restore_stock_best_effort(order: dict) -> List[stock_manager.StockUpdateResult]:
    """Put cancelled items back on the shelf; never blocks the cancellation."""
    label = order.get("order_id") or order["_id"]
    try:
        logger.info("Restoring stock for cancelled order %s", label)
        results = stock_manager.restore_stock_for_cancelled_order(get_db(), order.get("order_items") or [])
    except Exception:
        logger.exception("Error restoring stock for cancelled order %s", label)
        return []
    failed = [r for r in results if not r.success]
    if failed:
        logger.warning("Some stock restorations failed for order %s: %s", label, [r.model_dump() for r in failed])
    logger.info("Restored stock for %d of %d items in order %s", len(results) - len(failed), len(results), label)
    return results

@app.post("/api/orders", status_code=201)
def create_order(payload: OrderCreate):
    if not payload.order_items:
        raise HTTPException(status_code=400, detail="At least one order item is required")
    if payload.shipping_address is None:
        raise HTTPException(status_code=400, detail="Shipping address is required")
    if not payload.payment_method:
        raise HTTPException(status_code=400, detail="Payment method is required")

    db = get_db()
    order_id = new_order_id()
    while db["order"].find_one({"order_id": order_id}, {"_id": 1}):
        order_id = new_order_id()

    order = Order(order_id=order_id, status=OrderStatus.ORDERED.value, **payload.model_dump())
    inserted_id = create_document("order", order)
    logger.info("Created order %s", order_id)

    results = stock_manager.reduce_stock_for_order(db, order.order_items)
    if any(not r.success for r in results):
        logger.warning("Some products' stock could not be updated for order %s", order_id)

    return ok(to_str_id(db["order"].find_one({"_id": to_object_id(inserted_id)})))

@app.get("/api/orders")
def list_orders(user_id: Optional[str] = None, status: Optional[str] = None, page: int = 1, limit: int = 50):
    db = get_db()
    query: Dict[str, Any] = {}
    if user_id and user_id not in ("undefined", "null"):
        query["user"] = user_id
    if status == "paid":
        query["is_paid"] = True
    elif status == "delivered":
        query["is_delivered"] = True
    elif status == "cancelled":
        query["is_cancelled"] = True
    elif status:
        query["status"] = parse_status(status).value

    page = max(1, page)
    limit = min(max(1, limit), 100)
    total = db["order"].count_documents(query)
    cursor = db["order"].find(query).sort([("created_at", -1), ("_id", -1)]).skip((page - 1) * limit).limit(limit)
    return ok([to_str_id(d) for d in cursor], pagination=paginate(page, limit, total))

@app.get("/api/orders/{order_ref}")
def get_order(order_ref: str):
    return ok(to_str_id(load_order(order_ref)))

@app.put("/api/orders/{order_ref}", dependencies=[Depends(require_admin)])
def update_order(order_ref: str, payload: OrderUpdate):
    order = load_order(order_ref)
    if order.get("is_cancelled"):
        raise HTTPException(status_code=400, detail="Cancelled orders cannot be updated")

    now = utcnow()
    changes: Dict[str, Any] = {"updated_at": now}
    if payload.is_paid is not None:
        changes["is_paid"] = payload.is_paid
        changes["paid_at"] = now if payload.is_paid else None
    if payload.tracking_number or payload.carrier:
        changes["shipping.updated_at"] = now
        if payload.tracking_number:
            changes["shipping.tracking_number"] = payload.tracking_number
        if payload.carrier:
            changes["shipping.carrier"] = payload.carrier

    doc = get_db()["order"].find_one_and_update({"_id": order["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER)
    return ok(to_str_id(doc))

@app.get("/api/orders/{order_ref}/status")
def get_order_status(order_ref: str):
    order = load_order(order_ref)
    return ok({"order_id": order.get("order_id"), **describe(order)})

@app.put("/api/orders/{order_ref}/status", dependencies=[Depends(require_admin)])
def update_order_status(order_ref: str, status: Optional[str] = None, payload: Optional[StatusUpdate] = None):
    status = status or (payload.status if payload else None)
    if not status:
        raise HTTPException(status_code=400, detail="Status is required")
    target = parse_status(status)

    order = load_order(order_ref)
    update = plan_transition(order, target, utcnow())

    extra: Dict[str, Any] = {}
    if target is OrderStatus.CANCELLED:
        extra["stock_restoration"] = stock_manager.summarize(restore_stock_best_effort(order))

    doc = get_db()["order"].find_one_and_update({"_id": order["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER)
    return ok(to_str_id(doc), message=f"Order status updated to {target.value}", **extra)

@app.put("/api/orders/{order_ref}/cancel")
def cancel_order(order_ref: str, payload: Optional[CancelRequest] = None):
    order = load_order(order_ref)
    update = plan_transition(order, OrderStatus.CANCELLED, utcnow(), cancelled_message="Order is already cancelled")
    update["cancellation_reason"] = payload.cancellation_reason if payload else ""

    results = restore_stock_best_effort(order)

    doc = get_db()["order"].find_one_and_update({"_id": order["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER)
    return ok(
        to_str_id(doc),
        message="Order cancelled successfully",
        stock_restoration=stock_manager.summarize(results),
    )

# ---------------
# Blogs
# ---------------

@app.get("/api/blogs")
def list_blogs(page: int = 1, limit: int = 10):
    db = get_db()
    page = max(1, page)
    limit = max(1, limit)
    total = db["blog"].count_documents({})
    cursor = db["blog"].find({}).sort([("created_at", -1), ("_id", -1)]).skip((page - 1) * limit).limit(limit)
    return ok([to_str_id(b) for b in cursor], pagination=paginate(page, limit, total))

@app.post("/api/blogs", status_code=201, dependencies=[Depends(require_admin)])
def create_blog(payload: Blog):
    db = get_db()
    if db["blog"].find_one({"slug": payload.slug}):
        raise HTTPException(status_code=409, detail="A blog post with this slug already exists")
    inserted_id = create_document("blog", payload)
    return ok(to_str_id(db["blog"].find_one({"_id": to_object_id(inserted_id)})))

@app.get("/api/blogs/{slug}")
def get_blog(slug: str):
    doc = get_db()["blog"].find_one({"slug": slug})
    if not doc:
        raise HTTPException(status_code=404, detail="Blog post not found")
    return ok(to_str_id(doc))

@app.put("/api/blogs/{slug}", dependencies=[Depends(require_admin)])
def update_blog(slug: str, payload: BlogUpdate):
    changes = payload.model_dump(exclude_unset=True)
    changes["updated_at"] = utcnow()
    doc = get_db()["blog"].find_one_and_update({"slug": slug}, {"$set": changes}, return_document=ReturnDocument.AFTER)
    if not doc:
        raise HTTPException(status_code=404, detail="Blog post not found")
    return ok(to_str_id(doc))

@app.delete("/api/blogs/{slug}", dependencies=[Depends(require_admin)])
def delete_blog(slug: str):
    if not get_db()["blog"].find_one_and_delete({"slug": slug}):
        raise HTTPException(status_code=404, detail="Blog post not found")
    return {"success": True, "message": "Blog post deleted successfully"}

# ---------------
# Projects
# ---------------

@app.get("/api/projects")
def list_projects():
    cursor = get_db()["project"].find({}).sort([("created_at", -1), ("_id", -1)])
    return ok([to_str_id(p) for p in cursor])

@app.post("/api/projects", status_code=201, dependencies=[Depends(require_admin)])
def create_project(payload: ProjectCreate):
    db = get_db()
    slug = payload.slug or slugify(payload.title)
    if db["project"].find_one({"slug": slug}):
        raise HTTPException(status_code=409, detail="A project with this slug already exists")
    project = Project(**{**payload.model_dump(), "slug": slug})
    inserted_id = create_document("project", project)
    return ok(to_str_id(db["project"].find_one({"_id": to_object_id(inserted_id)})))

@app.get("/api/projects/{slug}")
def get_project(slug: str):
    doc = get_db()["project"].find_one({"slug": slug})
    if not doc:
        raise HTTPException(status_code=404, detail="Project not found")
    return ok(to_str_id(doc))

@app.put("/api/projects/{slug}", dependencies=[Depends(require_admin)])
def update_project(slug: str, payload: ProjectCreate):
    changes = payload.model_dump(exclude={"slug"})
    changes["updated_at"] = utcnow()
    doc = get_db()["project"].find_one_and_update({"slug": slug}, {"$set": changes}, return_document=ReturnDocument.AFTER)
    if not doc:
        raise HTTPException(status_code=404, detail="Project not found")
    return ok(to_str_id(doc))

@app.delete("/api/projects/{slug}", dependencies=[Depends(require_admin)])
def delete_project(slug: str):
    if not get_db()["project"].find_one_and_delete({"slug": slug}):
        raise HTTPException(status_code=404, detail="Project not found")
    return {"success": True, "message": "Project deleted successfully"}

# ---------------
# Testimonials / Contact
# ---------------

@app.get("/api/testimonials")
def list_testimonials(featured: Optional[bool] = None, limit: Optional[int] = None):
    query: Dict[str, Any] = {"approved": True}
    if featured:
        query["featured"] = True
    cursor = get_db()["testimonial"].find(query).sort([("created_at", -1), ("_id", -1)])
    if limit:
        cursor = cursor.limit(limit)
    return ok([to_str_id(t) for t in cursor])

@app.post("/api/testimonials", status_code=201, dependencies=[Depends(require_admin)])
def create_testimonial(payload: Testimonial):
    inserted_id = create_document("testimonial", payload)
    return ok(to_str_id(get_db()["testimonial"].find_one({"_id": to_object_id(inserted_id)})))

@app.post("/api/contact")
def contact(payload: ContactMessage):
    logger.info("Contact form submission from %s (%s): %s", payload.full_name, payload.email, payload.inquiry_type or "general")
    return {
        "success": True,
        "message": "Thank you for your message! We will get back to you within 24 hours.",
    }

# ---------------
# Users / Auth
# ---------------

def find_account(user_id: str):
    """Look a user up in the customer collection, then in the admin one."""
    oid = to_object_id(user_id)
    if oid is None:
        return None, None
    db = get_db()
    doc = db["user"].find_one({"_id": oid})
    if doc:
        return "user", doc
    doc = db["admin"].find_one({"_id": oid})
    if doc:
        return "admin", doc
    return None, None

@app.post("/api/signup", status_code=201)
def signup(payload: SignupRequest):
    if not payload.name or not payload.email or not payload.password:
        raise HTTPException(status_code=400, detail="Name, email, and password are required")
    if not is_valid_email(payload.email):
        raise HTTPException(status_code=400, detail="Please enter a valid email address")
    if len(payload.password) < 6:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters long")

    db = get_db()
    email = payload.email.strip().lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=409, detail="An account with this email already exists")

    user = User(
        name=payload.name.strip(),
        email=email,
        password=hash_password(payload.password),
        avatar=payload.avatar,
    )
    try:
        inserted_id = create_document("user", user)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="An account with this email already exists")
    saved = db["user"].find_one({"_id": to_object_id(inserted_id)})
    return {"success": True, "message": "Account created successfully", "data": public_user(saved)}

@app.post("/api/auth/forgot-password")
def forgot_password(payload: ForgotPasswordRequest):
    if not payload.email:
        raise HTTPException(status_code=400, detail="Email is required")
    reply = {"success": True, "message": "If an account with that email exists, a password reset link has been sent."}

    db = get_db()
    user = db["user"].find_one({"email": payload.email.strip().lower()})
    if not user:
        return reply

    token, expires = new_reset_token()
    db["user"].update_one({"_id": user["_id"]}, {"$set": {
        "reset_password_token": token,
        "reset_password_expire": expires,
        "updated_at": utcnow(),
    }})
    if not send_password_reset_email(user["email"], token):
        raise HTTPException(status_code=500, detail="Error sending reset email")
    return reply

@app.post("/api/auth/validate-reset-token")
def validate_reset_token(payload: ResetTokenRequest):
    if not payload.token:
        raise HTTPException(status_code=400, detail="Token is required")
    user = get_db()["user"].find_one({
        "reset_password_token": payload.token,
        "reset_password_expire": {"$gt": utcnow()},
    })
    if not user:
        return ok({"valid": False}, message="Invalid or expired reset token")
    return ok({"valid": True}, message="Valid reset token")

@app.post("/api/auth/reset-password")
def reset_password(payload: ResetPasswordRequest):
    if not payload.token or not payload.password:
        raise HTTPException(status_code=400, detail="Token and new password are required")
    problem = reset_password_problem(payload.password)
    if problem:
        raise HTTPException(status_code=400, detail=problem)

    db = get_db()
    user = db["user"].find_one({
        "reset_password_token": payload.token,
        "reset_password_expire": {"$gt": utcnow()},
    })
    if not user:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    db["user"].update_one({"_id": user["_id"]}, {
        "$set": {"password": hash_password(payload.password), "updated_at": utcnow()},
        "$unset": {"reset_password_token": "", "reset_password_expire": ""},
    })
    return {"success": True, "message": "Password has been reset successfully"}

@app.post("/api/change-password")
def change_password(payload: ChangePasswordRequest):
    if not payload.user_id or not payload.current_password or not payload.new_password:
        raise HTTPException(status_code=400, detail="User ID, current password, and new password are required")
    if len(payload.new_password) < 6:
        raise HTTPException(status_code=400, detail="New password must be at least 6 characters long")

    collection, account = find_account(payload.user_id)
    if not account:
        raise HTTPException(status_code=404, detail="User not found")
    if not verify_password(payload.current_password, account.get("password")):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    get_db()[collection].update_one({"_id": account["_id"]}, {"$set": {
        "password": hash_password(payload.new_password),
        "updated_at": utcnow(),
    }})
    return {"success": True, "message": "Password changed successfully"}

@app.get("/api/users", dependencies=[Depends(require_admin)])
def list_users():
    cursor = get_db()["user"].find({}).sort([("created_at", -1), ("_id", -1)])
    return ok([public_user(u) for u in cursor])

@app.post("/api/users", status_code=201, dependencies=[Depends(require_admin)])
def create_user(payload: UserCreate):
    db = get_db()
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=409, detail="An account with this email already exists")
    user = User(
        name=payload.name,
        email=email,
        password=hash_password(payload.password),
        is_admin=payload.is_admin,
        role="admin" if payload.is_admin else "user",
    )
    inserted_id = create_document("user", user)
    return ok(public_user(db["user"].find_one({"_id": to_object_id(inserted_id)})))

@app.put("/api/users")
def update_user(payload: UserUpdate, authorization: Optional[str] = Header(None)):
    if not payload.user_id:
        raise HTTPException(status_code=400, detail="Missing user_id")
    # Profile fields are self-service; role and password changes are admin-only.
    if payload.is_admin is not None or payload.password:
        require_admin(authorization)
    changes: Dict[str, Any] = {
        k: v for k, v in payload.model_dump(exclude={"user_id", "password", "is_admin"}).items() if v
    }
    if payload.is_admin is not None:
        changes["is_admin"] = payload.is_admin
    if payload.password:
        changes["password"] = hash_password(payload.password)

    collection, account = find_account(payload.user_id)
    if not account:
        raise HTTPException(status_code=404, detail="User not found")
    changes["updated_at"] = utcnow()
    doc = get_db()[collection].find_one_and_update({"_id": account["_id"]}, {"$set": changes}, return_document=ReturnDocument.AFTER)
    return ok(public_user(doc))

# ---------------
# Wishlist
# ---------------

def load_user(user_id: Optional[str]) -> dict:
    oid = to_object_id(user_id)
    user = get_db()["user"].find_one({"_id": oid}) if oid is not None else None
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user

@app.get("/api/wishlist")
def get_wishlist(user_id: Optional[str] = None):
    if not user_id:
        raise HTTPException(status_code=400, detail="User ID is required")
    user = load_user(user_id)
    oids = [oid for oid in (to_object_id(p) for p in user.get("wishlist") or []) if oid is not None]
    products = get_documents("product", {"_id": {"$in": oids}}) if oids else []
    return ok([to_str_id(p) for p in products])

@app.post("/api/wishlist")
def add_to_wishlist(payload: WishlistRequest):
    if not payload.user_id or not payload.product_id:
        raise HTTPException(status_code=400, detail="User ID and Product ID are required")
    oid = to_object_id(payload.product_id)
    if oid is None or not get_db()["product"].find_one({"_id": oid}):
        raise HTTPException(status_code=404, detail="Product not found")
    user = load_user(payload.user_id)
    if payload.product_id in (user.get("wishlist") or []):
        raise HTTPException(status_code=400, detail="Product already in wishlist")
    get_db()["user"].update_one({"_id": user["_id"]}, {"$push": {"wishlist": payload.product_id}})
    return {"success": True, "message": "Product added to wishlist"}

@app.delete("/api/wishlist")
def remove_from_wishlist(user_id: Optional[str] = None, product_id: Optional[str] = None):
    if not user_id or not product_id:
        raise HTTPException(status_code=400, detail="User ID and Product ID are required")
    user = load_user(user_id)
    get_db()["user"].update_one({"_id": user["_id"]}, {"$pull": {"wishlist": product_id}})
    return {"success": True, "message": "Product removed from wishlist"}

# ---------------
# Seed demo data
# ---------------

@app.post("/api/seed", dependencies=[Depends(require_admin)])
def seed_demo():
    """Seed categories and sample products if collections are empty."""
    return ok({"seeded": ensure_seeded()})

# Index setup and auto-seed on startup (idempotent)

@app.on_event("startup")
def startup_event():
    try:
        ensure_indexes()
        if config.SEED_ON_STARTUP:
            ensure_seeded()
    except DatabaseTimeout:
        logger.warning("Database unavailable at startup; indexes and seed data skipped")

@app.on_event("shutdown")
def shutdown_event():
    close()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
