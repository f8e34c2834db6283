import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, configure_logging, load_settings
from .database import build_store
from .errors import InvalidRequestError, StorageError
from .models import (
    NeededItemCreate,
    NeededItemDelete,
    NeededItemsResponse,
    NeededItemUpdate,
    SignupRequest,
    SignupsResponse,
    SuccessResponse,
)
from .service import BonfireService

settings = load_settings()
configure_logging(settings)
logger = logging.getLogger(__name__)

app = FastAPI(title="Beach Bonfire Signup API")

# The signup page is served separately and polls these routes
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_service: Optional[BonfireService] = None


def get_settings() -> Settings:
    return settings


def get_shared_service() -> BonfireService:
    # One store per process; /api/test and the routes share it
    global _service
    if _service is None:
        _service = BonfireService(build_store(settings))
    return _service


async def get_service(service: BonfireService = Depends(get_shared_service)) -> BonfireService:
    try:
        await service.ensure_initialized()
    except StorageError as e:
        logger.error(f"Sheet initialization error: {e}")
        raise HTTPException(status_code=500, detail="Storage is unavailable")
    return service


# --- ERROR HANDLERS ---
@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
async def bad_body(request: Request, exc: RequestValidationError):
    logger.info(f"Rejected body for {request.method} {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


@app.exception_handler(Exception)
async def catch_all(request: Request, exc: Exception):
    logger.error(f"Failing request: {request.url} - Error: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# --- API ROUTES ---
@app.get("/")
async def health_check():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "backend": settings.storage_backend,
    }


@app.get("/api/test")
async def test_connection(current: Settings = Depends(get_settings),
                          service: BonfireService = Depends(get_shared_service)):
    env = current.env_report()
    logger.info(f"Testing storage connection... env: {env}")
    try:
        await service.initialize()
    except Exception as e:
        logger.error(f"Storage test failed: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e), "env": env})
    logger.info("Storage initialized successfully")
    return {"success": True, "message": f"{service.store.name} storage connection working!", "env": env}


@app.get("/api/needed-items", response_model=NeededItemsResponse)
async def list_needed_items(service: BonfireService = Depends(get_service)):
    try:
        return NeededItemsResponse(needed_items=await service.get_needed_items())
    except StorageError as e:
        logger.error(f"Fetch needed items error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch needed items")


@app.post("/api/needed-items", response_model=SuccessResponse)
async def create_needed_item(body: NeededItemCreate = Body(...), service: BonfireService = Depends(get_service)):
    if not body.item or not body.item.strip() or body.category is None:
        raise HTTPException(status_code=400, detail="Item and category are required")
    try:
        await service.add_needed_item(body.item, body.category, body.quantity_needed or 1)
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        logger.error(f"Add needed item error: {e}")
        raise HTTPException(status_code=500, detail="Failed to add needed item")
    return SuccessResponse()


@app.put("/api/needed-items", response_model=SuccessResponse)
async def update_needed_item(body: NeededItemUpdate = Body(...), service: BonfireService = Depends(get_service)):
    if not body.item or body.quantity_needed is None:
        raise HTTPException(status_code=400, detail="Item and quantityNeeded are required")
    try:
        await service.update_item_quantity_needed(body.item, body.quantity_needed)
    except StorageError as e:
        logger.error(f"Update needed item error: {e}")
        raise HTTPException(status_code=500, detail="Failed to update item quantity")
    return SuccessResponse()


@app.delete("/api/needed-items", response_model=SuccessResponse)
async def delete_needed_item(body: NeededItemDelete = Body(...), service: BonfireService = Depends(get_service)):
    if not body.item:
        raise HTTPException(status_code=400, detail="Item is required")
    try:
        await service.remove_needed_item(body.item)
    except StorageError as e:
        logger.error(f"Remove needed item error: {e}")
        raise HTTPException(status_code=500, detail="Failed to remove needed item")
    return SuccessResponse()


@app.get("/api/signup", response_model=SignupsResponse)
async def list_signups(service: BonfireService = Depends(get_service)):
    try:
        return SignupsResponse(signups=await service.get_signups())
    except StorageError as e:
        logger.error(f"Fetch signups error: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch signups")


@app.post("/api/signup", response_model=SuccessResponse)
async def create_signup(body: SignupRequest = Body(...), service: BonfireService = Depends(get_service)):
    try:
        await service.record_signup(body.name, body.email, body.requested_items())
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageError as e:
        logger.error(f"Add signup error: {e}")
        raise HTTPException(status_code=500, detail="Failed to add signup")
    return SuccessResponse()
