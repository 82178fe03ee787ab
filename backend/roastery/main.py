from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from roastery import __version__
from roastery.config import settings
from roastery.middleware.exceptions import register_exception_handlers
from roastery.routers import (
    adjustments, batches, health, inventory, reconciliation, sales, transfers,
)

app = FastAPI(
    title="Roastery",
    description="Coffee roastery back office: roasting, packaging, stock and POS",
    version=__version__,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(batches.router, prefix="/api/batches", tags=["batches"])
app.include_router(inventory.router, prefix="/api/inventory", tags=["inventory"])
app.include_router(adjustments.router, prefix="/api/adjustments", tags=["adjustments"])
app.include_router(transfers.router, prefix="/api/transfers", tags=["transfers"])
app.include_router(reconciliation.router, prefix="/api/reconciliation", tags=["reconciliation"])
app.include_router(sales.router, prefix="/api/sales", tags=["sales"])
