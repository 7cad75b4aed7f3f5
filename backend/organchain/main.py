"""
OrganChain - Off-chain donor profile store API
Supplementary contact/status data for donors registered on the ledger.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from .core.config import settings
from .models.base import Base, engine
from .models import audit, donor, recipient  # noqa: F401 - register tables
from .api import donors, recipients
from .core.audit_middleware import AuditMiddleware

# NOTE: Profile schema is small and additive; create_all() keeps it in sync.
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="OrganChain Profile Store API",
    description=(
        "Mutable, best-effort profile data for organ donors and recipients. "
        "The donor registry contract remains the source of truth for "
        "registration and activity status."
    ),
    version=settings.VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(AuditMiddleware)

app.include_router(donors.router, prefix="/api")
app.include_router(recipients.router, prefix="/api")


@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "OrganChain Profile Store", "version": settings.VERSION}
