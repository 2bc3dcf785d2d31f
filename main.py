import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import TypeAdapter, ValidationError
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from auth import (
    SESSION_KEY, LineLogin, RequestContext, end_session, get_line_login, get_request_context,
    get_storage, login_line_user, require_admin, require_user,
)
from config import Settings, load_settings
from database import get_db
from schemas import (
    DeliverySlot, DeliverySlotCreate, Order, OrderCreate, Product, ProductCreate, User,
)
from storage import MongoStorage

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api")

_timestamp = TypeAdapter(datetime)


# Auth

@router.get("/auth/line")
async def line_login(request: Request, line: LineLogin = Depends(get_line_login)):
    return await line.authorize_redirect(request)


@router.get("/auth/line/callback")
async def line_callback(
    request: Request,
    storage: MongoStorage = Depends(get_storage),
    line: LineLogin = Depends(get_line_login),
):
    try:
        profile = await line.fetch_profile(request)
        user = await run_in_threadpool(login_line_user, storage, profile)
        session_id = await run_in_threadpool(storage.create_session, user.id)
    except Exception:
        logger.exception("line login failed")
        return RedirectResponse("/login", status_code=302)
    previous = request.session.get(SESSION_KEY)
    if previous:
        await run_in_threadpool(storage.delete_session, previous)
    request.session[SESSION_KEY] = session_id
    return RedirectResponse("/", status_code=302)


@router.get("/auth/user", response_model=User)
def current_user(ctx: RequestContext = Depends(get_request_context)):
    if not ctx.is_authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return ctx.user


@router.post("/auth/logout")
def logout(request: Request, storage: MongoStorage = Depends(get_storage)):
    end_session(request, storage)
    return {"message": "Logged out successfully"}


# Products

@router.get("/products", response_model=List[Product])
def list_products(storage: MongoStorage = Depends(get_storage)):
    try:
        return storage.get_products()
    except PyMongoError:
        logger.exception("failed to fetch products")
        raise HTTPException(status_code=500, detail="Failed to fetch products")


@router.post("/products", response_model=Product, status_code=201)
def create_product(
    payload: Any = Body(None),
    storage: MongoStorage = Depends(get_storage),
    admin: User = Depends(require_admin),
):
    try:
        product = ProductCreate.model_validate(payload)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid product data")
    try:
        return storage.create_product(product)
    except PyMongoError:
        logger.exception("failed to create product")
        raise HTTPException(status_code=500, detail="Failed to create product")


# Delivery slots

@router.get("/delivery-slots", response_model=List[DeliverySlot])
def list_delivery_slots(date: Optional[str] = None, storage: MongoStorage = Depends(get_storage)):
    if date:
        try:
            reference = _timestamp.validate_python(date)
        except ValidationError:
            raise HTTPException(status_code=400, detail="Invalid date")
    else:
        reference = datetime.now()
    try:
        return storage.get_available_delivery_slots(reference)
    except PyMongoError:
        logger.exception("failed to fetch delivery slots")
        raise HTTPException(status_code=500, detail="Failed to fetch delivery slots")


@router.post("/delivery-slots", response_model=DeliverySlot, status_code=201)
def create_delivery_slot(
    payload: Any = Body(None),
    storage: MongoStorage = Depends(get_storage),
    admin: User = Depends(require_admin),
):
    try:
        slot = DeliverySlotCreate.model_validate(payload)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid delivery slot data")
    try:
        return storage.create_delivery_slot(slot)
    except PyMongoError:
        logger.exception("failed to create delivery slot")
        raise HTTPException(status_code=500, detail="Failed to create delivery slot")


# Orders

@router.post("/orders", response_model=Order, status_code=201)
def create_order(
    payload: Any = Body(None),
    storage: MongoStorage = Depends(get_storage),
    user: User = Depends(require_user),
):
    try:
        order = OrderCreate.model_validate(payload)
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid order data")
    order.user_id = user.id
    try:
        return storage.create_order(order)
    except PyMongoError:
        logger.exception("failed to create order")
        raise HTTPException(status_code=500, detail="Failed to create order")


@router.get("/orders", response_model=List[Order])
def list_orders(storage: MongoStorage = Depends(get_storage), user: User = Depends(require_user)):
    try:
        return storage.get_orders()
    except PyMongoError:
        logger.exception("failed to fetch orders")
        raise HTTPException(status_code=500, detail="Failed to fetch orders")


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"message": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse({"message": "Invalid request"}, status_code=400)


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[MongoStorage] = None,
    line_login: Optional[LineLogin] = None,
) -> FastAPI:
    settings = settings or load_settings()
    if storage is None:
        storage = MongoStorage(get_db(settings.database_url, settings.database_name))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await run_in_threadpool(storage.ensure_indexes)
        await run_in_threadpool(storage.seed_products)
        yield

    app = FastAPI(title="Bakery Shop API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.storage = storage
    app.state.line_login = line_login or LineLogin(settings)

    app.add_middleware(SessionMiddleware, secret_key=settings.session_secret, session_cookie="bakery_session")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/")
    def root():
        return {"message": "Bakery Shop API running"}

    @app.get("/test")
    def test_database():
        response: Dict[str, Any] = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
            "connection_status": "Not Connected",
            "collections": [],
        }
        try:
            response["collections"] = storage.db.list_collection_names()[:10]
            response["connection_status"] = "Connected"
            response["database"] = "✅ Connected & Working"
        except PyMongoError as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
        return response

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn
    settings = load_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
