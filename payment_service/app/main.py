import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.core.config import settings
from shared.core.database import payments_engine, Base
from shared.helpers.exception_handler import setup_exception_handlers
from shared.wrappers.response_wrapper import JsonResponseMiddleware

from . import models  # noqa: F401  registers tables on Base
from .router.fees import fee_definitions_router
from .router.payments import payments_router, webhook_router
from ..util.paystack_client import build_payment_gateway

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s]: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create all tables
    Base.metadata.create_all(bind=payments_engine)
    logger.info("Payment service started in %s mode", settings.PAYMENT_MODE.value)
    yield


app = FastAPI(title="Payment Service API", lifespan=lifespan)

# One gateway per process, injected through get_payment_gateway
app.state.payment_gateway = build_payment_gateway(settings)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(JsonResponseMiddleware)

setup_exception_handlers(app)

# Include routers
app.include_router(fee_definitions_router.router)
app.include_router(payments_router.router)
app.include_router(webhook_router.router)
