import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from catalog import MongoProductRepository, filter_products, seed_products
from checkout import CheckoutRegistry, CheckoutSession, CurrentUser, SelectionChange, SessionView
from database import db
from errors import NotFound, StorefrontError
from orders import MongoOrderRepository, OrderPlacement, dashboard_stats
from payments import GatewayCallback, HostedGateway, PaymentMethod
from schemas import CustomerInfo, OrderRecord, OrderStatus, PaymentStatus, Product, ProductRecord
from storage import PRODUCT_IMAGE_PREFIX, DesignUploader, GridFSStorage, read_limited

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        MongoOrderRepository(db).ensure_indexes()
        logger.info("Order indexes ready on %s", getattr(db, "name", "database"))
    yield


app = FastAPI(title="Custom Print Store API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

registry = CheckoutRegistry()
gateway = HostedGateway.from_env()


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Dependencies

def require_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def get_product_repository(database=Depends(require_db)) -> MongoProductRepository:
    return MongoProductRepository(database)


def get_order_repository(database=Depends(require_db)) -> MongoOrderRepository:
    return MongoOrderRepository(database)


def get_storage(database=Depends(require_db)) -> GridFSStorage:
    return GridFSStorage(database)


def get_gateway() -> HostedGateway:
    return gateway


def get_registry() -> CheckoutRegistry:
    return registry


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> CurrentUser:
    return CurrentUser(id=x_user_id or None, is_admin=(x_user_role == "admin"))


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


@app.get("/")
def read_root():
    return {"message": "Custom Print Store Backend Ready"}


# Seed the default catalog if the collection is empty
@app.post("/seed/products")
def seed_catalog(products: MongoProductRepository = Depends(get_product_repository)):
    created = seed_products(products)
    if not created:
        return {"seeded": False, "message": "Products already exist"}
    return {"seeded": True, "count": created}


# Catalog

@app.get("/api/products", response_model=List[ProductRecord])
def list_products(
    category: Optional[str] = None,
    q: str = "",
    products: MongoProductRepository = Depends(get_product_repository),
):
    return filter_products(products.list(), search=q, category=category)


@app.get("/api/products/{product_id}", response_model=ProductRecord)
def get_product(product_id: str, products: MongoProductRepository = Depends(get_product_repository)):
    product = products.get(product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


# Admin console

class OrderStatusUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None


@app.get("/api/admin/products", response_model=List[ProductRecord])
def admin_list_products(
    _: CurrentUser = Depends(require_admin),
    products: MongoProductRepository = Depends(get_product_repository),
):
    return products.list(include_inactive=True)


@app.post("/api/admin/products", response_model=ProductRecord, status_code=201)
def admin_create_product(
    payload: Product,
    _: CurrentUser = Depends(require_admin),
    products: MongoProductRepository = Depends(get_product_repository),
):
    return products.create(payload)


@app.put("/api/admin/products/{product_id}", response_model=ProductRecord)
def admin_update_product(
    product_id: str,
    payload: Product,
    _: CurrentUser = Depends(require_admin),
    products: MongoProductRepository = Depends(get_product_repository),
):
    product = products.update(product_id, payload)
    if product is None:
        raise NotFound("Product not found")
    return product


@app.delete("/api/admin/products/{product_id}", status_code=204)
def admin_delete_product(
    product_id: str,
    _: CurrentUser = Depends(require_admin),
    products: MongoProductRepository = Depends(get_product_repository),
):
    if not products.delete(product_id):
        raise NotFound("Product not found")


@app.post("/api/admin/uploads")
async def admin_upload_product_image(
    file: UploadFile = File(...),
    _: CurrentUser = Depends(require_admin),
    storage: GridFSStorage = Depends(get_storage),
):
    uploader = DesignUploader(storage, prefix=PRODUCT_IMAGE_PREFIX)
    url = await uploader.upload(file.filename or "image", file.content_type, await read_limited(file))
    return {"url": url}


@app.get("/api/admin/orders", response_model=List[OrderRecord])
def admin_list_orders(
    limit: int = 100,
    _: CurrentUser = Depends(require_admin),
    orders: MongoOrderRepository = Depends(get_order_repository),
):
    return orders.list_orders(limit)


@app.get("/api/admin/orders/{order_id}")
def admin_get_order(
    order_id: str,
    _: CurrentUser = Depends(require_admin),
    orders: MongoOrderRepository = Depends(get_order_repository),
):
    order = orders.get_order(order_id)
    if order is None:
        raise NotFound("Order not found")
    return {"order": order, "items": orders.list_items(order_id)}


@app.patch("/api/admin/orders/{order_id}", response_model=OrderRecord)
def admin_update_order(
    order_id: str,
    payload: OrderStatusUpdate,
    _: CurrentUser = Depends(require_admin),
    orders: MongoOrderRepository = Depends(get_order_repository),
):
    order = orders.update_status(order_id, status=payload.status, payment_status=payload.payment_status)
    if order is None:
        raise NotFound("Order not found")
    return order


@app.get("/api/admin/stats")
def admin_stats(
    _: CurrentUser = Depends(require_admin),
    products: MongoProductRepository = Depends(get_product_repository),
    orders: MongoOrderRepository = Depends(get_order_repository),
):
    return dashboard_stats(products.list(include_inactive=True), orders.list_orders(limit=0))


# Checkout

class StartCheckout(BaseModel):
    product_id: str


class StartPayment(BaseModel):
    method: PaymentMethod = PaymentMethod.GATEWAY
    customer: Optional[CustomerInfo] = None


@app.post("/api/checkout/sessions", response_model=SessionView, status_code=201)
def open_checkout(
    payload: StartCheckout,
    user: CurrentUser = Depends(get_current_user),
    products: MongoProductRepository = Depends(get_product_repository),
    orders: MongoOrderRepository = Depends(get_order_repository),
    storage: GridFSStorage = Depends(get_storage),
    hosted: HostedGateway = Depends(get_gateway),
    sessions: CheckoutRegistry = Depends(get_registry),
):
    product = products.get(payload.product_id)
    if product is None or not product.is_active:
        raise NotFound("Product not found")
    session = CheckoutSession(
        product,
        placement=OrderPlacement(orders),
        uploader=DesignUploader(storage),
        gateway=hosted,
        user=user,
    )
    sessions.add(session)
    return session.view()


@app.get("/api/checkout/sessions/{session_id}", response_model=SessionView)
async def get_checkout(session_id: str, sessions: CheckoutRegistry = Depends(get_registry)):
    return sessions.get(session_id).view()


@app.delete("/api/checkout/sessions/{session_id}", status_code=204)
async def discard_checkout(session_id: str, sessions: CheckoutRegistry = Depends(get_registry)):
    sessions.discard(session_id)


@app.patch("/api/checkout/sessions/{session_id}/selection", response_model=SessionView)
async def update_selection(
    session_id: str,
    change: SelectionChange,
    sessions: CheckoutRegistry = Depends(get_registry),
):
    session = sessions.get(session_id)
    session.update_selection(change)
    return session.view()


@app.post("/api/checkout/sessions/{session_id}/design", response_model=SessionView)
async def upload_design(
    session_id: str,
    file: UploadFile = File(...),
    sessions: CheckoutRegistry = Depends(get_registry),
):
    session = sessions.get(session_id)
    await session.upload_design(file.filename or "design", file.content_type, await read_limited(file))
    return session.view()


@app.put("/api/checkout/sessions/{session_id}/customer", response_model=SessionView)
async def set_customer(
    session_id: str,
    customer: CustomerInfo,
    sessions: CheckoutRegistry = Depends(get_registry),
):
    session = sessions.get(session_id)
    session.set_customer(customer)
    return session.view()


@app.post("/api/checkout/sessions/{session_id}/proceed", response_model=SessionView)
async def proceed_to_payment(session_id: str, sessions: CheckoutRegistry = Depends(get_registry)):
    session = sessions.get(session_id)
    session.proceed_to_payment()
    return session.view()


@app.post("/api/checkout/sessions/{session_id}/payment", response_model=SessionView)
async def start_payment(
    session_id: str,
    payload: StartPayment,
    sessions: CheckoutRegistry = Depends(get_registry),
):
    session = sessions.get(session_id)
    await session.begin_payment(payload.method, payload.customer)
    return session.view()


@app.post("/api/checkout/sessions/{session_id}/payment/outcome", response_model=SessionView)
async def payment_outcome(
    session_id: str,
    callback: GatewayCallback,
    sessions: CheckoutRegistry = Depends(get_registry),
    hosted: HostedGateway = Depends(get_gateway),
):
    session = sessions.get(session_id)
    await session.complete_payment(hosted.resolve(callback))
    return session.view()


# Stored files

@app.get("/files/{path:path}")
def serve_file(path: str, storage: GridFSStorage = Depends(get_storage)):
    stored = storage.open(path)
    if stored is None:
        raise NotFound("File not found")
    media_type = (stored.metadata or {}).get("contentType") or "application/octet-stream"
    return StreamingResponse(stored, media_type=media_type)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
