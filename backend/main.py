"""FastAPI application entry point.

The schema is managed with Alembic; run ``alembic upgrade head`` from the
backend directory before starting the app.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import (
    bank_accounts,
    categories,
    categorization_rules,
    plaid,
    sync,
    transactions,
    webhooks,
)
from logging_config import setup_logging

setup_logging()

app = FastAPI(
    title="Ledger Sync",
    description="Bank transaction sync and reconciliation",
    version="0.1.0",
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(plaid.router)
app.include_router(sync.router)
app.include_router(webhooks.router)
app.include_router(transactions.router)
app.include_router(bank_accounts.router)
app.include_router(categories.router)
app.include_router(categorization_rules.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
