"""
Gift Card Fulfillment API - Main Application.

FastAPI application exposing the admin fulfillment actions.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import __version__
from config.settings import get_settings

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Create FastAPI application
app = FastAPI(
    title="Gift Card Fulfillment API",
    description="Admin API for approving orders and delivering supplier gift cards",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# TODO: Restrict origins once the admin dashboard has a fixed host
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint.

    Returns the API status, version and supplier environment.
    """
    settings = get_settings()
    return {
        "status": "healthy",
        "version": __version__,
        "service": "gift-card-fulfillment-api",
        "supplier_environment": settings.supplier.environment,
    }


@app.get("/", tags=["Root"])
def root():
    """
    Root endpoint with API information.
    """
    return {
        "message": "Gift Card Fulfillment API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health"
    }


# Import and include routers
from api.routers import gift_cards, orders

app.include_router(orders.router, prefix="/api/v1", tags=["Orders"])
app.include_router(gift_cards.router, prefix="/api/v1", tags=["Gift Cards"])
