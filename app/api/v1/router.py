"""Main API router aggregating all module routers."""

from fastapi import APIRouter

from app.api.v1.endpoints import academics, audit, auth, cbt, notifications, results, term_results

api_router = APIRouter()

# Authentication
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["Authentication"],
)

# Students, subjects and terms
api_router.include_router(
    academics.router,
    prefix="/academics",
    tags=["Academics"],
)

# Score records and cohort ranking
api_router.include_router(
    results.router,
    prefix="/results",
    tags=["Results"],
)

# Compiled term results and class statistics
api_router.include_router(
    term_results.router,
    prefix="/term-results",
    tags=["Term Results"],
)

# Computer-based tests
api_router.include_router(
    cbt.router,
    prefix="/cbt",
    tags=["CBT"],
)

# Notifications
api_router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["Notifications"],
)

# Audit trail
api_router.include_router(
    audit.router,
    prefix="/audit",
    tags=["Audit"],
)
