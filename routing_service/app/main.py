import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from shared.core.config import settings
from shared.core.database import routing_engine, Base
from shared.exception_handler import setup_exception_handlers

from .models import routing  # noqa: F401  registers the tables on Base
from .router.routing import (
    platform_rules_router,
    property_rules_router,
    booking_routing_router,
    routing_audit_router,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s]: %(message)s"
)

app = FastAPI(title="Revenue Routing Service API")

# Create all tables
Base.metadata.create_all(bind=routing_engine)

# Allow requests from the dashboard
origins = [
    "http://localhost:8080",
    "http://127.0.0.1:8003"
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

# Include routers
app.include_router(platform_rules_router.router)
app.include_router(property_rules_router.router)
app.include_router(booking_routing_router.router)
app.include_router(routing_audit_router.router)
