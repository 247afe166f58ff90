# Run with: uvicorn servicehub.main:app --host 0.0.0.0 --port 8000 --reload

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from servicehub.booking_routes import router as booking_router
from servicehub.gamification_routes import router as gamification_router
from .db import Base, engine
from . import models
from .errors import ServiceHubError
from .seed import seed_data
from .logging_config import get_logger

logger = get_logger("main")

app = FastAPI(title="ServiceHub Bookings and Rewards")

app.include_router(booking_router, prefix="/bookings")
app.include_router(gamification_router, prefix="/gamification")


@app.exception_handler(ServiceHubError)
async def service_error_handler(request: Request, exc: ServiceHubError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.on_event("startup")
def on_startup():
    logger.info("Starting ServiceHub application...")
    Base.metadata.create_all(bind=engine)
    seed_data()
    logger.info("Database initialized and seeded")


@app.get("/health")
async def health_check():
    return {"status": "ok"}
