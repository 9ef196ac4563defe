import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ✅ Import All API Routes
from konnectsphere.api.routes import auth, billing_webhook, favourites, health, investors, pitches, subscriptions, users

# ✅ Import Core Services
from konnectsphere.core import config
from konnectsphere.core.logging_config import setup_logging
from konnectsphere.core.service_dependency import get_billing_gateway, get_notification_service
from konnectsphere.db.init_db import init_db
from konnectsphere.db.migrate import run_migrations
from konnectsphere.db.session import SessionLocal
from konnectsphere.services.subscription_service import initialize_subscription_plans
from konnectsphere.services.sweeps import build_scheduler

logger = logging.getLogger(__name__)


# ============================================
# ✅ STARTUP / SHUTDOWN
# ============================================

def _prepare_database() -> None:
    if config.RUN_MIGRATIONS:
        run_migrations()
    else:
        init_db()

    if config.SEED_PLANS_ON_STARTUP:
        db = SessionLocal()
        try:
            initialize_subscription_plans(db)
        finally:
            db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.LOG_LEVEL)
    logger.info(f"Starting KonnectSphere API: environment={config.ENVIRONMENT}")

    _prepare_database()

    scheduler = build_scheduler(SessionLocal, get_billing_gateway(), get_notification_service())
    app.state.scheduler = scheduler
    if config.ENABLE_SCHEDULER:
        scheduler.start()
    else:
        logger.info("ENABLE_SCHEDULER=0 -> scheduled jobs registered but not started")

    yield

    scheduler.shutdown()
    logger.info("KonnectSphere API stopped")


# ============================================
# ✅ FASTAPI APP INIT
# ============================================

app = FastAPI(title="KonnectSphere API", lifespan=lifespan)

# ✅ CORS: frontend only (cookies are sent cross-origin)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_URL,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


# ============================================
# ✅ ERROR HANDLERS
# ============================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", []) if part != "body"),
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    logger.info(f"Validation failed: method={request.method}, path={request.url.path}, errors={len(errors)}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: method={request.method}, path={request.url.path}, error={exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ============================================
# ✅ REGISTER ALL ROUTERS
# ============================================

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(subscriptions.router)
app.include_router(billing_webhook.router)
app.include_router(pitches.router)
app.include_router(favourites.router)
app.include_router(investors.router)
app.include_router(health.router)


# ============================================
# ✅ HEALTH CHECK ROOT ENDPOINT
# ============================================

@app.get("/")
def root():
    return {"status": "KonnectSphere API running"}
