import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth
import cart
import catalog
from config import Settings
from database import connect, get_db

logger = logging.getLogger(__name__)


def init_db(db: Database, settings: Settings):
    db["user"].create_index("email", unique=True)
    db["product"].create_index("createdAt")
    auth.ensure_admin(db, settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    opened = app.state.db is None
    if opened:
        settings = app.state.settings
        app.state.db = connect(settings.database_url, settings.database_name)
        init_db(app.state.db, settings)
    yield
    if opened:
        app.state.db.client.close()


# ----------------------- Errors -----------------------
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=exc.headers)


async def validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        err = errors[0]
        field = ".".join(str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{field}: {err.get('msg')}" if field else err.get("msg", message)
    return JSONResponse({"error": message}, status_code=400)


async def unhandled_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error"}, status_code=500)


def create_app(settings: Optional[Settings] = None, db: Optional[Database] = None) -> FastAPI:
    """Build the API. With no ``db`` the connection is opened at startup."""
    settings = settings or Settings.from_env()
    app = FastAPI(title="E-commerce Backend", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = db
    if db is not None:
        init_db(db, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_error)
    app.add_exception_handler(RequestValidationError, validation_error)
    app.add_exception_handler(Exception, unhandled_error)

    register_routes(app)
    return app


def register_routes(app: FastAPI):
    # ----------------------- Health -----------------------
    @app.get("/")
    def root():
        return {"message": "E-commerce API running"}

    @app.get("/api/health")
    def health(db: Database = Depends(get_db)):
        response = {"backend": "running", "database": "unavailable", "collections": []}
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "connected"
        except Exception as e:
            logger.warning("Health check could not reach the database: %s", e)
        return response

    # ----------------------- Auth -----------------------
    @app.post("/api/signup", status_code=201)
    def signup(body: auth.SignupBody, db: Database = Depends(get_db), settings: Settings = Depends(auth.get_settings)):
        return auth.signup(db, settings, body)

    @app.post("/api/login")
    def login(body: auth.LoginBody, db: Database = Depends(get_db), settings: Settings = Depends(auth.get_settings)):
        return auth.login(db, settings, body)

    @app.get("/api/profile")
    def get_profile(user=Depends(auth.get_current_user), db: Database = Depends(get_db)):
        return auth.get_profile(db, auth.user_object_id(user))

    @app.put("/api/profile")
    def update_profile(
        body: auth.ProfileUpdateBody,
        user=Depends(auth.get_current_user),
        db: Database = Depends(get_db),
        settings: Settings = Depends(auth.get_settings),
    ):
        return auth.update_profile(db, settings, auth.user_object_id(user), body)

    # ----------------------- Products -----------------------
    @app.get("/api/products")
    def list_products(
        minPrice: Optional[float] = None,
        maxPrice: Optional[float] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
        db: Database = Depends(get_db),
    ):
        return catalog.list_products(db, min_price=minPrice, max_price=maxPrice, category=category, search=search)

    @app.get("/api/products/{product_id}")
    def get_product(product_id: str, db: Database = Depends(get_db)):
        return catalog.get_product(db, product_id)

    @app.post("/api/products", status_code=201)
    def create_product(body: catalog.ProductCreateBody, user=Depends(auth.require_admin), db: Database = Depends(get_db)):
        return catalog.create_product(db, body, user)

    @app.put("/api/products/{product_id}")
    def update_product(
        product_id: str,
        body: catalog.ProductUpdateBody,
        user=Depends(auth.require_admin),
        db: Database = Depends(get_db),
    ):
        return catalog.update_product(db, product_id, body, user)

    @app.delete("/api/products/{product_id}")
    def delete_product(product_id: str, user=Depends(auth.require_admin), db: Database = Depends(get_db)):
        return catalog.delete_product(db, product_id, user)

    @app.post("/api/seed")
    def seed(user=Depends(auth.require_admin), db: Database = Depends(get_db)):
        return catalog.seed_products(db, user)

    # ----------------------- Cart -----------------------
    @app.get("/api/cart")
    def get_cart(user=Depends(auth.get_current_user), db: Database = Depends(get_db)):
        return cart.get_cart(db, auth.user_object_id(user))

    @app.post("/api/cart")
    def add_to_cart(body: cart.CartAddBody, user=Depends(auth.get_current_user), db: Database = Depends(get_db)):
        return cart.add_item(db, auth.user_object_id(user), body)

    @app.patch("/api/cart/{product_id}")
    def update_cart_item(
        product_id: str,
        body: cart.CartUpdateBody,
        user=Depends(auth.get_current_user),
        db: Database = Depends(get_db),
    ):
        return cart.update_item(db, auth.user_object_id(user), product_id, body)

    @app.delete("/api/cart/{product_id}")
    def remove_from_cart(product_id: str, user=Depends(auth.get_current_user), db: Database = Depends(get_db)):
        return cart.remove_item(db, auth.user_object_id(user), product_id)

    @app.delete("/api/cart")
    def clear_cart(user=Depends(auth.get_current_user), db: Database = Depends(get_db)):
        return cart.clear_cart(db, auth.user_object_id(user))


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=app.state.settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
