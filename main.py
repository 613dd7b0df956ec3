import logging
import os
import secrets
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, File, Form, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from pymongo.database import Database

import catalog
import custom_requests
import database
import oauth
import orders
import users
from auth import (
    SessionContext,
    current_user,
    get_session,
    login,
    login_with_provider,
    logout,
    require_admin,
    require_user,
)
from config import (
    CLOUDINARY_URL,
    LOG_LEVEL,
    SESSION_COOKIE_NAME,
    SESSION_COOKIE_SECURE,
    SESSION_TTL_SECONDS,
    UPLOAD_DIR,
)
from deps import get_blob_store, get_db, get_notifier
from errors import AuthError, NotFoundError, StoreError
from notifier import Notifier, custom_request_confirmation, notify_safely, order_receipt
from schemas import (
    LoginRequest,
    Order,
    OrderCreate,
    OrderStatus,
    OrderStatusUpdate,
    ProductOut,
    PublicUser,
    RegisterRequest,
    UserUpdate,
)
from storage import BlobStore, UploadedFile

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is not None:
        database.ensure_indexes()
    yield


app = FastAPI(title="ArtistGrade Storefront API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

if not CLOUDINARY_URL:
    app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR, check_dir=False), name="uploads")


# --------------------- Errors ---------------------

@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# --------------------- Utility ---------------------

def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=SESSION_TTL_SECONDS,
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
    )


def read_upload(image: Optional[UploadFile]) -> Optional[UploadedFile]:
    # browsers send an empty part when no file was picked
    if image is None or not image.filename:
        return None
    return UploadedFile(data=image.file.read(), filename=image.filename)


# --------------------- Routes ---------------------

@app.get("/")
def root():
    return {"message": "ArtistGrade API is running"}


@app.get("/api/dashboard-counts")
def dashboard_counts(db: Database = Depends(get_db), admin: SessionContext = Depends(require_admin)):
    return {
        "totalProducts": db["product"].count_documents({}),
        "totalOrders": db["order"].count_documents({}),
        "totalUsers": db["user"].count_documents({}),
    }


# Auth
@app.post("/login")
def login_route(req: LoginRequest, response: Response, db: Database = Depends(get_db)):
    token, ctx = login(db, req.email, req.password)
    set_session_cookie(response, token)
    return {"message": "Login successful", "user": {"id": ctx.user_id, "fullname": ctx.name, "role": ctx.role}}


@app.post("/api/register")
def register(req: RegisterRequest, db: Database = Depends(get_db)):
    user = users.register_user(db, req)
    return {"message": "User registered successfully!", "user": user.model_dump(by_alias=True)}


@app.get("/logout")
def logout_route(db: Database = Depends(get_db), ctx: SessionContext = Depends(get_session)):
    logout(db, ctx)
    response = RedirectResponse("/", status_code=303)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return response


@app.get("/api/current_user", response_model=Optional[PublicUser])
def current_user_route(db: Database = Depends(get_db), ctx: SessionContext = Depends(get_session)):
    return current_user(db, ctx)


@app.get("/auth/google")
def google_login():
    if not oauth.is_configured():
        raise NotFoundError("Google sign-in is not enabled")
    state = secrets.token_urlsafe(16)
    response = RedirectResponse(oauth.authorization_url(state), status_code=303)
    response.set_cookie(oauth.STATE_COOKIE, state, max_age=600, httponly=True, samesite="lax")
    return response


@app.get("/auth/google/callback")
def google_callback(request: Request, code: str = "", state: str = "", db: Database = Depends(get_db)):
    if not oauth.is_configured():
        raise NotFoundError("Google sign-in is not enabled")
    expected = request.cookies.get(oauth.STATE_COOKIE, "")
    failure = RedirectResponse("/login", status_code=303)
    failure.delete_cookie(oauth.STATE_COOKIE)
    if not code or not expected or not secrets.compare_digest(state, expected):
        return failure
    try:
        profile = oauth.exchange_code(code)
        token, _ = login_with_provider(db, profile)
    except AuthError as e:
        logger.info("Google sign-in rejected: %s", e.message)
        return failure
    response = RedirectResponse("/", status_code=303)
    response.delete_cookie(oauth.STATE_COOKIE)
    set_session_cookie(response, token)
    return response


@app.get("/checkout")
def checkout_page(ctx: SessionContext = Depends(get_session)):
    if not ctx.is_authenticated:
        return RedirectResponse("/login?redirect=/checkout", status_code=303)
    return {"message": "Ready for checkout", "user": {"id": ctx.user_id, "fullname": ctx.name}}


# Products
@app.get("/api/products", response_model=List[ProductOut])
def list_products(category: Optional[str] = None, q: Optional[str] = None, db: Database = Depends(get_db)):
    return catalog.list_products(db, category=category, q=q)


@app.get("/api/products/{product_id}", response_model=ProductOut)
def get_product(product_id: str, db: Database = Depends(get_db)):
    return catalog.get_product(db, product_id)


@app.post("/api/products", response_model=ProductOut)
def create_product(
    name: str = Form(...),
    price: float = Form(...),
    stock: int = Form(...),
    category: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    admin: SessionContext = Depends(require_admin),
):
    fields = {"name": name, "category": category, "price": price, "stock": stock}
    return catalog.create_product(db, blobs, fields, read_upload(image))


@app.put("/api/products/{product_id}", response_model=ProductOut)
def update_product(
    product_id: str,
    name: Optional[str] = Form(None),
    price: Optional[float] = Form(None),
    stock: Optional[int] = Form(None),
    category: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    admin: SessionContext = Depends(require_admin),
):
    fields = {"name": name, "category": category, "price": price, "stock": stock}
    return catalog.update_product(db, blobs, product_id, fields, read_upload(image))


@app.delete("/api/products/{product_id}")
def delete_product(
    product_id: str,
    db: Database = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    admin: SessionContext = Depends(require_admin),
):
    catalog.delete_product(db, blobs, product_id)
    return {"message": "Product deleted successfully"}


# Users
@app.get("/api/users", response_model=List[PublicUser])
def list_users(db: Database = Depends(get_db), admin: SessionContext = Depends(require_admin)):
    return users.list_users(db)


@app.put("/api/users/{user_id}", response_model=PublicUser)
def update_user(user_id: str, patch: UserUpdate, db: Database = Depends(get_db),
                admin: SessionContext = Depends(require_admin)):
    return users.update_user(db, user_id, patch)


@app.delete("/api/users/{user_id}")
def delete_user(user_id: str, db: Database = Depends(get_db), admin: SessionContext = Depends(require_admin)):
    users.delete_user(db, user_id)
    return {"message": "User deleted successfully"}


# Orders
@app.post("/api/orders")
def create_order(
    body: OrderCreate,
    background_tasks: BackgroundTasks,
    db: Database = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: SessionContext = Depends(require_user),
):
    order = orders.create_order(db, body, user_id=user.user_id)
    subject, html = order_receipt(order)
    background_tasks.add_task(notify_safely, notifier, order.email, subject, html)
    return {"success": True, "orderId": order.order_id}


@app.get("/api/orders", response_model=List[Order])
def list_orders(status: Optional[OrderStatus] = None, db: Database = Depends(get_db),
                admin: SessionContext = Depends(require_admin)):
    return orders.list_orders(db, status=status)


@app.get("/api/orders/{order_id}", response_model=Order)
def get_order(order_id: str, db: Database = Depends(get_db), admin: SessionContext = Depends(require_admin)):
    return orders.get_order(db, order_id)


@app.put("/api/orders/{order_id}/status", response_model=Order)
def update_order_status(order_id: str, body: OrderStatusUpdate, db: Database = Depends(get_db),
                        admin: SessionContext = Depends(require_admin)):
    return orders.update_status(db, order_id, body.status)


@app.delete("/api/orders/{order_id}")
def delete_order(order_id: str, db: Database = Depends(get_db), admin: SessionContext = Depends(require_admin)):
    orders.delete_order(db, order_id)
    return {"message": "Order deleted successfully"}


# Custom product requests
@app.post("/submit-request")
def submit_request(
    background_tasks: BackgroundTasks,
    name: str = Form(...),
    email: str = Form(...),
    product: str = Form(...),
    category: Optional[str] = Form(None),
    details: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    blobs: BlobStore = Depends(get_blob_store),
    notifier: Notifier = Depends(get_notifier),
):
    fields = {"name": name, "email": email, "product": product, "category": category, "details": details}
    request_id = custom_requests.submit_request(db, blobs, fields, read_upload(image))
    subject, html = custom_request_confirmation(name, product)
    background_tasks.add_task(notify_safely, notifier, email, subject, html)
    return {"message": "Request submitted successfully!", "id": request_id}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
