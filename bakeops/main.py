# bakeops/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bakeops.middleware import RequestIdMiddleware
from bakeops.db import Base, engine
from bakeops.config import settings
from bakeops.errors import NotFoundError, InvalidInputError, InvalidTransitionError, ConflictError
from bakeops.schemas.common import ErrorOut
import bakeops.models  # noqa: F401  (registers tables)

from bakeops.routers import orders, quotes, production, pricing, inventory

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("bakeops")

app = FastAPI(title="BakeOps API", version="0.1.0")

@app.on_event("startup")
def init_db():
    Base.metadata.create_all(bind=engine)
    logger.info("bakeops started (env=%s)", settings.APP_ENV)

# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Domain errors -> same {"detail": ...} shape HTTPException produces
_STATUS = {
    NotFoundError: 404,
    InvalidInputError: 400,
    InvalidTransitionError: 409,
    ConflictError: 409,
}

def _handler(status_code: int):
    async def handle(request: Request, exc: Exception):
        if status_code >= 409:
            logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content=ErrorOut(detail=str(exc)).model_dump())
    return handle

for exc_type, status_code in _STATUS.items():
    app.add_exception_handler(exc_type, _handler(status_code))

app.include_router(orders.router)
app.include_router(quotes.router)
app.include_router(production.router)
app.include_router(pricing.router)
app.include_router(inventory.router)

@app.get("/healthz")
def healthz():
    return {"ok": True}

def run():
    import uvicorn
    uvicorn.run("bakeops.main:app", host=settings.HOST, port=settings.PORT)
