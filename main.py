from datetime import datetime, timedelta, timezone
import hashlib
import json
import secrets
from typing import List, Optional

import structlog
from fastapi import FastAPI, HTTPException, Depends, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, EmailStr, ValidationError
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

import cart as carts
import orders
from config import Settings, configure_logging
from database import connect, create_document, doc_to_json, get_documents, to_object_id
from errors import (
    StoreError,
    ProductNotFoundError,
    OrderNotFoundError,
    CartItemNotFoundError,
    InvalidIdError,
    InsufficientStockError,
    EmptyOrderError,
    IncompleteAddressError,
    InvalidStatusError,
    InvalidOptionError,
    InvalidQuantityError,
    PaymentVerificationError,
    PaymentGatewayError,
    NotAuthorizedError,
)
from payments import RazorpayGateway
from schemas import (
    UserCreate, UserLogin, TokenResponse,
    ProductCreate, ProductUpdate,
    CartAdd, CartUpdate, CartPayload,
    OrderCreate, PaymentVerify, OrderStatusUpdate,
)

settings = Settings.from_env()
configure_logging(settings)
logger = structlog.get_logger(__name__)

db = connect(settings)
gateway = RazorpayGateway(settings)

app = FastAPI(title="Store API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -------------------- Dependencies --------------------

def get_settings() -> Settings:
    return settings


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


def get_gateway() -> RazorpayGateway:
    return gateway

# -------------------- Errors --------------------

ERROR_STATUS_CODES = {
    ProductNotFoundError: 404,
    OrderNotFoundError: 404,
    CartItemNotFoundError: 404,
    InvalidIdError: 400,
    InsufficientStockError: 400,
    EmptyOrderError: 400,
    IncompleteAddressError: 400,
    InvalidStatusError: 400,
    InvalidOptionError: 400,
    InvalidQuantityError: 400,
    PaymentVerificationError: 400,
    PaymentGatewayError: 500,
    NotAuthorizedError: 403,
}


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Map StoreError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, error_type=type(exc).__name__, error=str(exc))
    return error_response(status_code, str(exc))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg", "Invalid request")
    else:
        message = "Invalid request"
    return error_response(400, message)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request_crashed", path=request.url.path, error_type=type(exc).__name__)
    return error_response(500, "Server error")

# -------------------- Auth --------------------

def hash_password(password: str, salt: Optional[str] = None) -> tuple[str, str]:
    if not salt:
        salt = secrets.token_hex(16)
    h = hashlib.sha256((salt + password).encode()).hexdigest()
    return h, salt


def verify_password(password: str, salt: str, expected_hash: str) -> bool:
    h, _ = hash_password(password, salt)
    return secrets.compare_digest(h, expected_hash)


class AuthUser(BaseModel):
    id: str
    email: EmailStr
    name: str
    isAdmin: bool = False


def get_user_by_token(db: Database, token: str) -> Optional[dict]:
    user = db["user"].find_one({"token": token})
    if not user or not user.get("token_expires"):
        return None
    expires = user["token_expires"]
    # pymongo hands datetimes back naive, in UTC
    if expires.tzinfo is None:
        expires = expires.replace(tzinfo=timezone.utc)
    if expires <= datetime.now(timezone.utc):
        return None
    return user


def auth_dependency(
    authorization: Optional[str] = Header(None),
    db: Database = Depends(get_db),
) -> dict:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    token = authorization.split(" ", 1)[1]
    user = get_user_by_token(db, token)
    if not user:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    return user


def admin_dependency(user: dict = Depends(auth_dependency)) -> dict:
    if not user.get("isAdmin"):
        raise HTTPException(status_code=403, detail="Not authorized as an admin")
    return user


def to_auth_user(user: dict) -> AuthUser:
    return AuthUser(id=str(user["_id"]), email=user["email"], name=user.get("name", ""), isAdmin=bool(user.get("isAdmin")))

# -------------------- Health --------------------

@app.get("/")
def read_root():
    return {"message": "Store API is running"}


@app.get("/api/health")
def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/api/auth/register", status_code=201)
def register(payload: UserCreate, db: Database = Depends(get_db)):
    email = payload.email.lower()
    if db["user"].find_one({"email": email}):
        raise HTTPException(status_code=400, detail="User already exists with this email")
    pw_hash, salt = hash_password(payload.password)
    user_doc = {
        "name": payload.name,
        "email": email,
        "password_hash": pw_hash,
        "salt": salt,
        "isAdmin": False,
    }
    user_id = create_document(db, "user", user_doc)
    return {"success": True, "data": {"id": user_id, "email": email, "name": payload.name}}


@app.post("/api/auth/login", response_model=TokenResponse)
def login(payload: UserLogin, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = db["user"].find_one({"email": payload.email.lower()})
    if not user:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not verify_password(payload.password, user.get("salt", ""), user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    token = secrets.token_urlsafe(32)
    expires = datetime.now(timezone.utc) + timedelta(days=settings.token_ttl_days)
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"token": token, "token_expires": expires}})
    return TokenResponse(access_token=token)


@app.get("/api/auth/me", response_model=AuthUser)
def me(user: dict = Depends(auth_dependency)):
    return to_auth_user(user)

# -------------------- Products --------------------

@app.get("/api/products")
def list_products(
    q: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    db: Database = Depends(get_db),
):
    filter_query = {}
    if q:
        filter_query["name"] = {"$regex": q, "$options": "i"}
    if category:
        filter_query["category"] = category
    products = get_documents(db, "product", filter_query, limit)
    return {"success": True, "count": len(products), "data": [doc_to_json(p) for p in products]}


@app.get("/api/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    prod = db["product"].find_one({"_id": to_object_id(product_id)})
    if not prod:
        raise ProductNotFoundError(product_id)
    return {"success": True, "data": doc_to_json(prod)}


@app.post("/api/products", status_code=201)
def create_product(payload: ProductCreate, user: dict = Depends(admin_dependency), db: Database = Depends(get_db)):
    doc = {"user": str(user["_id"]), **payload.model_dump()}
    pid = create_document(db, "product", doc)
    return {"success": True, "data": doc_to_json(db["product"].find_one({"_id": to_object_id(pid)}))}


@app.put("/api/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, user: dict = Depends(admin_dependency), db: Database = Depends(get_db)):
    prod = db["product"].find_one({"_id": to_object_id(product_id)})
    if not prod:
        raise ProductNotFoundError(product_id)
    update = {k: v for k, v in payload.model_dump().items() if v is not None}
    update["updated_at"] = datetime.now(timezone.utc)
    db["product"].update_one({"_id": prod["_id"]}, {"$set": update})
    return {"success": True, "data": doc_to_json(db["product"].find_one({"_id": prod["_id"]}))}


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, user: dict = Depends(admin_dependency), db: Database = Depends(get_db)):
    result = db["product"].delete_one({"_id": to_object_id(product_id)})
    if result.deleted_count == 0:
        raise ProductNotFoundError(product_id)
    logger.info("product_deleted", product_id=product_id)
    return {"success": True, "message": "Product removed"}

# -------------------- Cart --------------------

@app.get("/api/cart")
def get_cart(user: dict = Depends(auth_dependency), db: Database = Depends(get_db)):
    return doc_to_json(carts.get_cart(db, str(user["_id"])))


@app.post("/api/cart", status_code=201)
def add_to_cart(payload: CartAdd, user: dict = Depends(auth_dependency), db: Database = Depends(get_db)):
    cart = carts.add_item(
        db, str(user["_id"]), payload.productId, payload.quantity,
        payload.selectedSize, payload.selectedColor,
    )
    return doc_to_json(cart)


@app.put("/api/cart/{item_id}")
def update_cart_item(item_id: str, payload: CartUpdate, user: dict = Depends(auth_dependency), db: Database = Depends(get_db)):
    cart = carts.update_item(
        db, str(user["_id"]), item_id, payload.quantity,
        payload.selectedSize, payload.selectedColor,
    )
    return doc_to_json(cart)


@app.delete("/api/cart/{item_id}")
def remove_from_cart(item_id: str, user: dict = Depends(auth_dependency), db: Database = Depends(get_db)):
    return doc_to_json(carts.remove_item(db, str(user["_id"]), item_id))


@app.delete("/api/cart")
def clear_cart(user: dict = Depends(auth_dependency), db: Database = Depends(get_db)):
    carts.clear_cart(db, str(user["_id"]))
    return {"message": "Cart cleared"}

# -------------------- Orders --------------------

def parse_cart_param(raw: str) -> List[dict]:
    try:
        payload = CartPayload.model_validate(json.loads(raw))
    except (ValueError, ValidationError):
        raise HTTPException(status_code=400, detail="Invalid cart data")
    return [line.model_dump() for line in payload.items]


@app.get("/api/orders/checkout")
def checkout_quote(
    productId: Optional[str] = Query(None),
    cart: Optional[str] = Query(None),
    user: dict = Depends(auth_dependency),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    if productId:
        lines = [{"product": productId, "qty": 1}]
    elif cart:
        lines = parse_cart_param(cart)
    else:
        lines = carts.cart_lines(carts.get_cart(db, str(user["_id"])))
    data = orders.quote(db, settings, user, lines)
    return {"success": True, "data": data}


@app.post("/api/orders/checkout", status_code=201)
@app.post("/api/orders", status_code=201)
def create_order(
    payload: OrderCreate,
    user: dict = Depends(auth_dependency),
    db: Database = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    order = orders.place_order(db, gateway, settings, str(user["_id"]), payload)
    return {"success": True, "data": doc_to_json(order)}


@app.get("/api/orders/myorders")
def my_orders(user: dict = Depends(auth_dependency), db: Database = Depends(get_db)):
    docs = get_documents(db, "order", {"user": str(user["_id"])})
    return {"success": True, "count": len(docs), "data": [doc_to_json(o) for o in docs]}


@app.get("/api/orders")
def list_orders(
    status: Optional[str] = Query(None),
    user: dict = Depends(admin_dependency),
    db: Database = Depends(get_db),
):
    query = {}
    if status:
        query["status"] = status
    docs = get_documents(db, "order", query)
    return {"success": True, "count": len(docs), "data": [doc_to_json(o) for o in docs]}


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user: dict = Depends(auth_dependency), db: Database = Depends(get_db)):
    order = orders.get_order_for(db, order_id, user)
    return {"success": True, "data": doc_to_json(order)}


@app.post("/api/orders/{order_id}/verify")
def verify_payment(
    order_id: str,
    payload: PaymentVerify,
    user: dict = Depends(auth_dependency),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    order = orders.confirm_payment(db, order_id, user, payload, settings)
    return {"success": True, "data": doc_to_json(order)}


@app.get("/api/orders/{order_id}/payment")
def get_order_payment(
    order_id: str,
    user: dict = Depends(admin_dependency),
    db: Database = Depends(get_db),
    gateway: RazorpayGateway = Depends(get_gateway),
):
    order = orders.get_order(db, order_id)
    result = order.get("paymentResult") or {}
    if not order.get("isPaid") or not result.get("razorpayPaymentId"):
        raise HTTPException(status_code=400, detail="Order is not paid")
    return {"success": True, "data": gateway.fetch_payment(result["razorpayPaymentId"])}


@app.put("/api/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    payload: OrderStatusUpdate,
    user: dict = Depends(admin_dependency),
    db: Database = Depends(get_db),
):
    order = orders.set_status(db, order_id, payload.status)
    return {"success": True, "data": doc_to_json(order)}


@app.put("/api/orders/{order_id}/deliver")
def deliver_order(order_id: str, user: dict = Depends(admin_dependency), db: Database = Depends(get_db)):
    order = orders.mark_delivered(db, order_id)
    return {"success": True, "data": doc_to_json(order)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
