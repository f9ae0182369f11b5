import logging
from contextlib import asynccontextmanager
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Body, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

import envelope
from addresses import AddressService
from auth import CredentialService
from cart import CartService
from catalog import CatalogService, Pagination
from config import Settings, setup_logging
from database import DocumentStore, connect, serialize_doc, utcnow
from errors import (
    DuplicateUser, Forbidden, InvalidInput, InvalidQuery, ServiceError, StoreError, Unauthorized, UserNotFound,
)
from schemas import Address, LoginRequest, Payment, Product, SignupRequest, User as UserSchema

log = logging.getLogger(__name__)


# --------------------- Wiring ---------------------

def _wire(app: FastAPI, store: DocumentStore) -> None:
    store.ensure_indexes()
    app.state.store = store
    app.state.catalog = CatalogService(store)
    app.state.cart = CartService(store, clock=app.state.clock)
    app.state.addresses = AddressService(store)


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_credentials(request: Request) -> CredentialService:
    return request.app.state.credentials


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.catalog


def get_cart(request: Request) -> CartService:
    return request.app.state.cart


def get_addresses(request: Request) -> AddressService:
    return request.app.state.addresses


def get_current_user(token: Optional[str] = Header(None),
                     credentials: CredentialService = Depends(get_credentials)) -> dict:
    if not token:
        raise Unauthorized("No Authorization header provided")
    return credentials.validate_token(token)


def require_admin(claims: dict = Depends(get_current_user), store: DocumentStore = Depends(get_store)) -> dict:
    user = store.find_user(claims["user_id"])
    if not user.get("is_admin"):
        raise Forbidden("access denied: admin privileges required")
    return claims


def parse_id(value: Optional[str], label: str) -> str:
    if not value:
        raise InvalidInput(f"{label} id is required")
    if not ObjectId.is_valid(value):
        raise InvalidInput(f"invalid {label} id")
    return str(ObjectId(value))


# --------------------- Accounts ---------------------

router = APIRouter(prefix="/api/v1")


def _register(body: SignupRequest, is_admin: bool, store: DocumentStore, credentials: CredentialService) -> str:
    if store.count_users({"email": body.email}) > 0:
        raise DuplicateUser("user already exists")
    if store.count_users({"phone": body.phone}) > 0:
        raise DuplicateUser("this phone number is already in use")

    oid = ObjectId()
    token, refresh_token = credentials.issue_token_pair(body.email, body.first_name, body.last_name, str(oid))
    user = UserSchema(
        first_name=body.first_name,
        last_name=body.last_name,
        email=body.email,
        phone=body.phone,
        password=credentials.hash_password(body.password),
        is_admin=is_admin,
        token=token,
        refresh_token=refresh_token,
    )
    doc = user.model_dump()
    doc["_id"] = oid
    user_id = store.insert_user(doc)
    log.info("%s %s signed up", "Admin" if is_admin else "User", user_id)
    return user_id


def _login(body: LoginRequest, admin_only: bool, store: DocumentStore, credentials: CredentialService) -> dict:
    try:
        user = store.find_user_by_field("email", body.email)
    except UserNotFound:
        raise Unauthorized("email or password is incorrect")
    if not credentials.verify_password(body.password, user.get("password", "")):
        raise Unauthorized("email or password is incorrect")
    if admin_only and not user.get("is_admin"):
        raise Unauthorized("access denied: admin privileges required")

    user_id = str(user["_id"])
    token, refresh_token = credentials.issue_token_pair(
        user["email"], user["first_name"], user["last_name"], user_id
    )
    store.update_user_fields(user_id, {"token": token, "refresh_token": refresh_token})
    return {"user_id": user_id, "token": token, "refresh_token": refresh_token}


@router.post("/users/signup")
def signup(body: SignupRequest, store: DocumentStore = Depends(get_store),
           credentials: CredentialService = Depends(get_credentials)):
    _register(body, False, store, credentials)
    return envelope.success("Signed Up Successfully")


@router.post("/users/login")
def login(body: LoginRequest, store: DocumentStore = Depends(get_store),
          credentials: CredentialService = Depends(get_credentials)):
    return envelope.success("Logged In Successfully", _login(body, False, store, credentials))


@router.post("/admin/signup")
def admin_signup(body: SignupRequest, store: DocumentStore = Depends(get_store),
                 credentials: CredentialService = Depends(get_credentials)):
    _register(body, True, store, credentials)
    return envelope.success("Admin Signed Up Successfully")


@router.post("/admin/login")
def admin_login(body: LoginRequest, store: DocumentStore = Depends(get_store),
                credentials: CredentialService = Depends(get_credentials)):
    return envelope.success("Logged In Successfully", _login(body, True, store, credentials))


# --------------------- Catalog ---------------------

@router.get("/users/productview")
def product_view(search: Optional[str] = None, catalog: CatalogService = Depends(get_catalog)):
    if not search:
        raise InvalidQuery("search query is required")
    items = catalog.search_by_name(search)
    return envelope.success(data=[serialize_doc(d) for d in items])


@router.get("/users/search")
def search_products(search: Optional[str] = None, min_price: Optional[str] = None,
                    max_price: Optional[str] = None, page: Optional[str] = None,
                    page_size: Optional[str] = None, catalog: CatalogService = Depends(get_catalog)):
    pagination = Pagination.from_query(page, page_size)
    items, total = catalog.search_by_name_and_price(search, min_price, max_price, pagination)
    return envelope.paginated([serialize_doc(d) for d in items], total, pagination)


@router.get("/products")
def list_products(page: Optional[str] = None, page_size: Optional[str] = None,
                  claims: dict = Depends(get_current_user), catalog: CatalogService = Depends(get_catalog)):
    pagination = Pagination.from_query(page, page_size)
    items, total = catalog.list_products(pagination)
    return envelope.paginated([serialize_doc(d) for d in items], total, pagination)


@router.post("/admin/addproduct")
def add_product(body: Product, claims: dict = Depends(require_admin),
                catalog: CatalogService = Depends(get_catalog)):
    product_id = catalog.add_product(body)
    return envelope.success("Product added successfully", {"product_id": product_id})


# --------------------- Cart & Orders ---------------------

@router.post("/cart/add")
def add_to_cart(id: Optional[str] = Query(None), claims: dict = Depends(get_current_user),
                cart: CartService = Depends(get_cart)):
    product_id = cart.add_to_cart(claims["user_id"], parse_id(id, "product"))
    return envelope.success("product added to cart successfully", {"product_id": product_id})


@router.delete("/cart/remove")
def remove_from_cart(id: Optional[str] = Query(None), claims: dict = Depends(get_current_user),
                     cart: CartService = Depends(get_cart)):
    cart.remove_from_cart(claims["user_id"], parse_id(id, "product"))
    return envelope.success("product removed from cart successfully")


@router.get("/cart")
def get_cart_items(claims: dict = Depends(get_current_user), cart: CartService = Depends(get_cart)):
    lines = cart.get_cart(claims["user_id"])
    return envelope.success(data={"cart": lines, "count": len(lines)})


@router.post("/cart/checkout")
def checkout(payment: Optional[Payment] = Body(None), claims: dict = Depends(get_current_user),
             cart: CartService = Depends(get_cart)):
    order_id, total = cart.checkout(claims["user_id"], payment)
    return envelope.success("order placed successfully", {"order_id": order_id, "total_price": total})


@router.post("/cart/instantbuy")
def instant_buy(id: Optional[str] = Query(None), payment: Optional[Payment] = Body(None),
                claims: dict = Depends(get_current_user), cart: CartService = Depends(get_cart)):
    order_id, price = cart.instant_buy(claims["user_id"], parse_id(id, "product"), payment)
    return envelope.success("instant buy successful", {"order_id": order_id, "price": price})


@router.get("/orders")
def my_orders(claims: dict = Depends(get_current_user), cart: CartService = Depends(get_cart)):
    return envelope.success(data=cart.list_orders(claims["user_id"]))


# --------------------- Addresses ---------------------

@router.get("/address")
def list_addresses(claims: dict = Depends(get_current_user), addresses: AddressService = Depends(get_addresses)):
    items = addresses.list(claims["user_id"])
    return envelope.success(data={"addresses": items, "count": len(items)})


@router.post("/address")
def add_address(body: Address, claims: dict = Depends(get_current_user),
                addresses: AddressService = Depends(get_addresses)):
    address_id = addresses.add(claims["user_id"], body)
    return envelope.success("address added successfully", {"address_id": address_id})


@router.put("/address/home")
def edit_home_address(body: Address, claims: dict = Depends(get_current_user),
                      addresses: AddressService = Depends(get_addresses)):
    address_id = addresses.edit_home(claims["user_id"], body)
    return envelope.success("home address updated successfully", {"address_id": address_id})


@router.put("/address/work")
def edit_work_address(body: Address, claims: dict = Depends(get_current_user),
                      addresses: AddressService = Depends(get_addresses)):
    address_id = addresses.edit_work(claims["user_id"], body)
    return envelope.success("work address updated successfully", {"address_id": address_id})


@router.delete("/address")
def delete_address(id: Optional[str] = Query(None), claims: dict = Depends(get_current_user),
                   addresses: AddressService = Depends(get_addresses)):
    addresses.delete(claims["user_id"], parse_id(id, "address"))
    return envelope.success("address deleted successfully")


# --------------------- App ---------------------

def create_app(settings: Optional[Settings] = None, store: Optional[DocumentStore] = None,
               clock=utcnow) -> FastAPI:
    settings = settings or Settings.from_env()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = None
        if getattr(app.state, "store", None) is None:
            db = connect(settings.database_url, settings.database_name, settings.db_timeout_ms)
            _wire(app, DocumentStore(db))
            log.info("Connected to database %s", settings.database_name)
        yield
        if db is not None:
            db.client.close()
            log.info("Database connection closed")

    app = FastAPI(title="Storefront API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.clock = clock
    app.state.credentials = CredentialService(settings.secret_key, settings.bcrypt_rounds)
    app.state.store = None
    if store is not None:
        _wire(app, store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return envelope.error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            "%s: %s" % (".".join(str(part) for part in e["loc"] if part != "body"), e["msg"])
            for e in exc.errors()
        )
        return envelope.error(400, details or "invalid request body")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return envelope.error(exc.status_code, str(exc.detail))

    @app.get("/")
    def root():
        return {"message": "Storefront API is running"}

    @app.get("/test")
    def test_database(request: Request):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_name": settings.database_name,
            "connection_status": "Not Connected",
            "collections": [],
        }
        store = request.app.state.store
        if store is None:
            response["database"] = "⚠️  Available but not initialized"
            return response
        try:
            response["collections"] = store.ping()[:10]
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
        except StoreError as e:
            response["database"] = f"⚠️  Connected but Error: {e.message}"
        return response

    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn
    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
