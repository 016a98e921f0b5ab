from collections import defaultdict
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.auth import fastapi_users, auth_backend, session_backend
from core.config import settings
from core.logging import get_logger
from db.database import create_db_and_tables
from routers.activity import router as activity_router
from routers.alerts import router as alerts_router
from routers.batches import router as batches_router
from routers.categories import router as categories_router
from routers.images import router as images_router
from routers.products import router as products_router
from routers.reports import router as reports_router
from routers.sales import router as sales_router
from routers.saved_filters import router as saved_filters_router
from routers.stock import router as stock_router
from routers.suppliers import router as suppliers_router
from routers.tags import router as tags_router
from schemas.users import UserRead, UserCreate, UserUpdate

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_db_and_tables()
    logger.info("Database ready")
    yield


app = FastAPI(
    title="Stockroom API",
    description="Multi-tenant inventory management: products, stock movements, sales and reports",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def field_errors(exc: RequestValidationError) -> dict:
    """Group pydantic errors by field name."""
    errors = defaultdict(list)
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        field = ".".join(loc[1:]) if len(loc) > 1 else (loc[0] if loc else "body")
        errors[field].append(err.get("msg", "Invalid value"))
    return dict(errors)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = field_errors(exc)
    logger.warning(f"Validation failed on {request.method} {request.url.path}: {sorted(errors)}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"success": False, "message": "Validation failed", "errors": errors},
    )


# Authentication routes (fastapi-users)
app.include_router(fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"])
app.include_router(fastapi_users.get_auth_router(session_backend), prefix="/auth/session", tags=["auth"])
app.include_router(fastapi_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_reset_password_router(), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_verify_router(UserRead), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix="/users", tags=["users"])

# Image upload routes
app.include_router(images_router, prefix="/images", tags=["images"])

# Inventory routes
app.include_router(products_router, prefix="/products", tags=["products"])
app.include_router(saved_filters_router, prefix="/saved-filters", tags=["saved filters"])
app.include_router(categories_router, prefix="/categories", tags=["categories"])
app.include_router(tags_router, prefix="/tags", tags=["tags"])
app.include_router(suppliers_router, prefix="/suppliers", tags=["suppliers"])
app.include_router(stock_router, prefix="/stock", tags=["stock"])
app.include_router(batches_router, prefix="/batches", tags=["batches"])
app.include_router(alerts_router, prefix="/alerts", tags=["alerts"])
app.include_router(sales_router, prefix="/sales", tags=["sales"])
app.include_router(reports_router, prefix="/reports", tags=["reports"])
app.include_router(activity_router, prefix="/activity", tags=["activity"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
