from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from db.init import init_db
from dotenv import load_dotenv
import logging
import os

load_dotenv()

from routers import bans, bookings, providers, subscription
from utils.errors import InfrastructureError, ServiceError
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

origins = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
    if o.strip()
]


app = FastAPI(title="Marketplace Trust Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,          # cannot be ["*"] if allow_credentials=True
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ServiceError)
def handle_service_error(request: Request, exc: ServiceError):
    if isinstance(exc, InfrastructureError):
        logger.error(f"Internal failure on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, **exc.to_dict()})


@app.on_event("startup")
def startup():
    init_db(seed=os.getenv("SEED_DEMO_DATA", "false").lower() in ("1", "true", "yes"))

@app.get("/health")
def health_check():
    return {"status": "ok"}

# Routers
app.include_router(bans.router, prefix="/bans", tags=["Bans"])
app.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])
app.include_router(providers.router, prefix="/providers", tags=["Providers"])
app.include_router(subscription.router, prefix="/subscriptions", tags=["Subscriptions"])


@app.get("/")
def root():
    return {"message": "Marketplace Trust Backend running successfully"}
