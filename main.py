import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError

import config
from database import Database

import addresses
import analytics
import auth
import cart
import orders
import products
import reviews
import support
import uploads
import users
import wishlist

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)

ROUTERS = (
    auth.router,
    orders.router,
    cart.router,
    addresses.router,
    wishlist.router,
    products.router,
    reviews.router,
    users.router,
    analytics.router,
    support.router,
    uploads.router,
)


def _field_names(exc: RequestValidationError) -> str:
    names = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
        names.append(".".join(loc) or "body")
    return ", ".join(dict.fromkeys(names))


def create_app(database: Optional[Database] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.db is None
        if owned:
            app.state.db = Database.from_env()
        yield
        if owned and app.state.db is not None:
            app.state.db.close()
            app.state.db = None

    app = FastAPI(title="Kiran Sales Storefront API", version="1.0.0", lifespan=lifespan)
    app.state.db = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": f"Missing or invalid fields: {_field_names(exc)}"})

    @app.exception_handler(PyMongoError)
    async def storage_error(request: Request, exc: PyMongoError):
        logger.exception("Storage error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.get("/")
    def read_root():
        return {"message": "Kiran Sales storefront API is running"}

    @app.get("/test")
    def test_database(request: Request):
        response = {
            "backend": "✅ Running",
            "database": "❌ Not Available",
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
            "connection_status": "Not Connected",
            "collections": [],
        }
        db = request.app.state.db
        if db is None:
            return response
        try:
            db.ping()
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = db.list_collection_names()[:10]
        except PyMongoError as e:
            response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
        return response

    for router in ROUTERS:
        app.include_router(router)

    try:
        os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    except OSError:
        logger.warning("Upload dir %s cannot be created, uploads will be inlined", config.UPLOAD_DIR)
    if os.path.isdir(config.UPLOAD_DIR):
        app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR), name="uploads")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
