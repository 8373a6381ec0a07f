import os
import time
from dataclasses import dataclass
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from carts import CartStore
from config import Settings
from database import JsonStore
from errors import NotFound, Unauthorized, register_exception_handlers
from logger import logger, setup_logger
from policy import Action, require_access
from products import CatalogStore
from schemas import (
    AddItemRequest,
    Cart,
    LoginRequest,
    Principal,
    Product,
    ProductCreate,
    ProductUpdate,
    Purchase,
    TokenResponse,
    UserCreate,
    UserPublic,
)
from security import SessionIssuer
from users import UserDirectory


@dataclass
class Services:
    settings: Settings
    store: JsonStore
    users: UserDirectory
    products: CatalogStore
    carts: CartStore
    sessions: SessionIssuer


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_current_user(
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> Principal:
    if not authorization:
        raise Unauthorized()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized()
    return services.sessions.verify(token.strip())


def admin_for(action: Action):
    def dependency(user: Principal = Depends(get_current_user)) -> Principal:
        require_access(user, None, action)
        return user

    return dependency


# Users
users_router = APIRouter(prefix="/api/users", tags=["Users"])


@users_router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, services: Services = Depends(get_services)):
    user = services.users.authenticate(payload.name, payload.password)
    if user is None:
        logger.warning("Login failed", extra={"user_name": payload.name})
        raise Unauthorized("Invalid credentials")
    return TokenResponse(token=services.sessions.issue(user))


@users_router.post("", response_model=UserPublic, status_code=201)
def create_user(
    payload: UserCreate,
    user: Principal = Depends(admin_for(Action.MANAGE_USERS)),
    services: Services = Depends(get_services),
):
    return services.users.create(payload)


@users_router.get("/me", response_model=UserPublic)
def read_me(user: Principal = Depends(get_current_user), services: Services = Depends(get_services)):
    record = services.users.get(user.id)
    if record is None:
        raise NotFound("User not found")
    return record.public()


@users_router.delete("/{user_id}", status_code=204)
def delete_user(
    user_id: str,
    user: Principal = Depends(admin_for(Action.MANAGE_USERS)),
    services: Services = Depends(get_services),
):
    services.users.delete(user_id)
    return Response(status_code=204)


# Products
products_router = APIRouter(prefix="/api/products", tags=["Products"])


@products_router.get("", response_model=List[Product])
def list_products(user: Principal = Depends(get_current_user), services: Services = Depends(get_services)):
    return services.products.list_visible(user)


@products_router.get("/{product_id}", response_model=Product)
def get_product(
    product_id: str,
    user: Principal = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return services.products.get_visible(user, product_id)


@products_router.post("", response_model=Product, status_code=201)
def create_product(
    payload: ProductCreate,
    user: Principal = Depends(admin_for(Action.MANAGE_PRODUCTS)),
    services: Services = Depends(get_services),
):
    return services.products.create(payload)


@products_router.put("/{product_id}", response_model=Product)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    user: Principal = Depends(admin_for(Action.MANAGE_PRODUCTS)),
    services: Services = Depends(get_services),
):
    return services.products.update(product_id, payload)


@products_router.delete("/{product_id}", status_code=204)
def delete_product(
    product_id: str,
    user: Principal = Depends(admin_for(Action.MANAGE_PRODUCTS)),
    services: Services = Depends(get_services),
):
    services.products.delete(product_id)
    return Response(status_code=204)


# Cart
cart_router = APIRouter(prefix="/api/cart", tags=["Cart"])


@cart_router.get("", response_model=Cart)
def read_cart(user: Principal = Depends(get_current_user), services: Services = Depends(get_services)):
    require_access(user, user.id, Action.READ_CART)
    return services.carts.get_cart(user.id)


@cart_router.post("/items", response_model=Cart)
def add_cart_item(
    payload: AddItemRequest,
    user: Principal = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    require_access(user, user.id, Action.WRITE_CART)
    product = services.products.get(payload.product_id)
    # Retired products cannot be added, not even by admins.
    if product is None or not product.is_active:
        raise NotFound("Product not found")
    return services.carts.add_item(user.id, product, payload.quantity)


@cart_router.delete("/items/{product_id}", response_model=Cart)
def remove_cart_item(
    product_id: str,
    user: Principal = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    require_access(user, user.id, Action.WRITE_CART)
    return services.carts.remove_item(user.id, product_id)


# Without this, "/items" would be read as a user id by clear_cart below.
@cart_router.delete("/items", include_in_schema=False)
def remove_cart_item_without_id():
    raise NotFound("Not found")


@cart_router.post("/checkout", response_model=Purchase)
def checkout(user: Principal = Depends(get_current_user), services: Services = Depends(get_services)):
    require_access(user, user.id, Action.WRITE_CART)
    return services.carts.checkout(user.id)


@cart_router.get("/history", response_model=List[Purchase])
@cart_router.get("/history/{user_id}", response_model=List[Purchase])
def read_history(
    user_id: Optional[str] = None,
    user: Principal = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    target = user_id or user.id
    require_access(user, target, Action.READ_HISTORY)
    return services.carts.get_history(target)


@cart_router.delete("", response_model=Cart)
@cart_router.delete("/{user_id}", response_model=Cart)
def clear_cart(
    user_id: Optional[str] = None,
    user: Principal = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    target = user_id or user.id
    require_access(user, target, Action.CLEAR_CART)
    return services.carts.clear(target)


# Service
service_router = APIRouter()


@service_router.get("/")
def root():
    return {"status": "ok", "service": "shop-backend"}


@service_router.get("/health")
def health(services: Services = Depends(get_services)):
    data_dir = services.store.data_dir
    storage = "ok" if data_dir.is_dir() and os.access(data_dir, os.W_OK) else "error"
    return {"backend": "running", "storage": storage}


def build_services(settings: Settings) -> Services:
    store = JsonStore(settings.data_dir)
    store.ensure_dir(store.data_dir)
    services = Services(
        settings=settings,
        store=store,
        users=UserDirectory(store, bcrypt_rounds=settings.bcrypt_rounds),
        products=CatalogStore(store),
        carts=CartStore(store),
        sessions=SessionIssuer(settings.jwt_secret, settings.jwt_expires_minutes),
    )
    services.users.initialize()
    services.products.initialize()
    services.carts.initialize()

    if settings.admin_name and settings.admin_password:
        created = services.users.ensure_admin(settings.admin_name, settings.admin_password)
        if created is not None:
            logger.info("Bootstrap admin created", extra={"user_id": created.id})
    return services


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logger(level=settings.log_level)

    app = FastAPI(title="Shop API")
    app.state.services = build_services(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "Request handled",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return response

    register_exception_handlers(app)
    app.include_router(service_router)
    app.include_router(users_router)
    app.include_router(products_router)
    app.include_router(cart_router)
    logger.info("App ready", extra={"data_dir": str(settings.data_dir)})
    return app


if __name__ == "__main__":
    import uvicorn

    settings = Settings.from_env()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
