"""FastAPI application for the pre-order tracker API."""

import time
from contextlib import asynccontextmanager
from typing import Annotated, Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from .. import __version__
from ..core.config import Settings, get_settings, validate_settings
from ..core.dependencies import (
    check_supabase_health,
    get_constraint_store,
    get_option_store,
    get_order_store,
    get_supabase,
    verify_admin_key,
)
from ..core.enums import MODEL_SOURCE, OPTION_STORE_TYPES, VehicleType
from ..core.exceptions import (
    ConstraintConflictError,
    ConstraintNotFoundError,
    ConstraintVerificationUnavailable,
    ConstraintViolationError,
    OrderNotFoundError,
    StoreError,
)
from ..core.logging import log_error, log_request, log_response, logger
from ..db.constraints import ConstraintStore
from ..db.options import OptionStore
from ..db.orders import OrderStore
from ..models.constraint import ConstraintCreate, ConstraintUpdate
from ..models.order import OrderPayload
from ..services.recheck import recheck_order
from ..services.resolver import decisions_to_wire, find_duplicate_rules, resolve_for
from ..services.seed import seed_constraints

# Validate settings on startup
try:
    validate_settings()
except ValueError as e:
    logger.error(f"Configuration error: {e}")
    raise

# Rate limiter
limiter = Limiter(key_func=get_remote_address)


def _order_rate_limit() -> str:
    return get_settings().rate_limit


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan."""
    logger.info("Starting pre-order tracker API...")
    yield
    logger.info("Shutting down...")


app = FastAPI(
    title="Pre-order Tracker API",
    description="Vehicle pre-order tracking with option constraint validation",
    version=__version__,
    lifespan=lifespan,
)

app.state.limiter = limiter

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Admin-Key"],
)


# -----------------------------------------------------------------------------
# Error handlers
# -----------------------------------------------------------------------------


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    log_error("Rate limit exceeded", client=get_remote_address(request))
    return JSONResponse(
        status_code=429, content={"detail": "Rate limit exceeded. Try again later."}
    )


@app.exception_handler(ConstraintViolationError)
async def violation_handler(request: Request, exc: ConstraintViolationError):
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Order violates the option constraints for its model",
            "violations": [v.model_dump() for v in exc.violations],
        },
    )


@app.exception_handler(ConstraintConflictError)
async def conflict_handler(request: Request, exc: ConstraintConflictError):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "existingId": exc.existing_id},
    )


@app.exception_handler(ConstraintNotFoundError)
@app.exception_handler(OrderNotFoundError)
async def not_found_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConstraintVerificationUnavailable)
@app.exception_handler(StoreError)
async def unavailable_handler(request: Request, exc: Exception):
    log_error("Store unavailable", exc, path=request.url.path)
    return JSONResponse(
        status_code=503,
        content={"detail": "Storage temporarily unavailable. Try again later."},
    )


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    log_request(request.method, request.url.path)

    response = await call_next(request)

    duration_ms = (time.time() - start) * 1000
    log_response(request.method, request.url.path, response.status_code, duration_ms)

    return response


# -----------------------------------------------------------------------------
# Response Models
# -----------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    supabase: dict[str, Any] | None = None


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse)
async def health_check(
    detailed: bool = False,
    settings: Settings = Depends(get_settings),
):
    """
    Health check endpoint.

    - Basic: Returns {"status": "healthy"}
    - Detailed (?detailed=true): Checks Supabase connectivity
    """
    if not detailed:
        return {"status": "healthy"}

    supabase_health = await check_supabase_health(
        get_supabase(), settings.constraints_table
    )
    overall = "healthy" if supabase_health["status"] == "healthy" else "degraded"
    return {"status": overall, "supabase": supabase_health}


# -----------------------------------------------------------------------------
# Constraints (public reads)
# -----------------------------------------------------------------------------


@app.get("/api/constraints")
async def list_constraints(
    store: Annotated[ConstraintStore, Depends(get_constraint_store)],
    source_type: Annotated[Optional[str], Query(alias="sourceType")] = None,
    source_value: Annotated[Optional[str], Query(alias="sourceValue")] = None,
    vehicle_type: Annotated[Optional[VehicleType], Query(alias="vehicleType")] = None,
):
    """List active constraints (global + the given vehicle type)."""
    records = store.list_active_constraints(
        source_type, source_value, vehicle_type.value if vehicle_type else None
    )
    return [r.to_wire() for r in records]


@app.get("/api/constraints/resolve")
async def resolve_constraints(
    store: Annotated[ConstraintStore, Depends(get_constraint_store)],
    source_value: Annotated[str, Query(alias="sourceValue", min_length=1)],
    vehicle_type: Annotated[Optional[VehicleType], Query(alias="vehicleType")] = None,
):
    """Decision map for one model/trim. Unconstrained fields are omitted."""
    vt = vehicle_type.value if vehicle_type else None
    records = store.list_active_constraints(MODEL_SOURCE, source_value, vt)
    return {
        "sourceValue": source_value,
        "vehicleType": vt,
        "decisions": decisions_to_wire(resolve_for(records, source_value, vt)),
    }


# -----------------------------------------------------------------------------
# Constraints (admin)
# -----------------------------------------------------------------------------


@app.get("/api/constraints/duplicates")
async def list_duplicate_constraints(
    store: Annotated[ConstraintStore, Depends(get_constraint_store)],
    _admin: Annotated[bool, Depends(verify_admin_key)],
):
    """Active rules that share a (source, vehicle type, target) tuple."""
    groups = find_duplicate_rules(store.list_active_constraints())
    if groups:
        logger.warning(f"Found {len(groups)} duplicate constraint groups")
    return {"duplicates": [g.model_dump(by_alias=True) for g in groups]}


@app.post("/api/constraints", status_code=201)
async def create_constraint(
    body: ConstraintCreate,
    store: Annotated[ConstraintStore, Depends(get_constraint_store)],
    _admin: Annotated[bool, Depends(verify_admin_key)],
):
    """Create a rule. Requires X-Admin-Key header."""
    return store.create_constraint(body).to_wire()


@app.put("/api/constraints/{constraint_id}")
async def update_constraint(
    constraint_id: str,
    body: ConstraintUpdate,
    store: Annotated[ConstraintStore, Depends(get_constraint_store)],
    _admin: Annotated[bool, Depends(verify_admin_key)],
):
    """Update type, values or active flag of a rule."""
    try:
        return store.update_constraint(constraint_id, body).to_wire()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/api/constraints/{constraint_id}")
async def deactivate_constraint(
    constraint_id: str,
    store: Annotated[ConstraintStore, Depends(get_constraint_store)],
    _admin: Annotated[bool, Depends(verify_admin_key)],
):
    """Soft-delete a rule."""
    store.deactivate_constraint(constraint_id)
    return {"message": "Constraint deactivated"}


@app.post("/api/admin/seed-constraints")
async def seed_default_constraints(
    store: Annotated[ConstraintStore, Depends(get_constraint_store)],
    _admin: Annotated[bool, Depends(verify_admin_key)],
    dry_run: Annotated[bool, Query(alias="dryRun")] = False,
    vehicle_type: Annotated[Optional[VehicleType], Query(alias="vehicleType")] = None,
):
    """Create the default Model 3 / Model Y rules that are missing."""
    return seed_constraints(store, vehicle_type=vehicle_type, dry_run=dry_run).to_dict()


# -----------------------------------------------------------------------------
# Options
# -----------------------------------------------------------------------------


@app.get("/api/options")
async def list_options(
    store: Annotated[OptionStore, Depends(get_option_store)],
    option_type: Annotated[Optional[str], Query(alias="type")] = None,
    vehicle_type: Annotated[Optional[VehicleType], Query(alias="vehicleType")] = None,
):
    """Active dropdown options, optionally for one type / vehicle."""
    if option_type and option_type not in OPTION_STORE_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid type. Must be one of: {', '.join(OPTION_STORE_TYPES)}",
        )
    grouped = store.list_options(option_type, vehicle_type.value if vehicle_type else None)
    return [
        {"type": kind, **opt.model_dump(by_alias=True)}
        for kind, options in grouped.items()
        for opt in options
    ]


# -----------------------------------------------------------------------------
# Orders
# -----------------------------------------------------------------------------


@app.get("/api/orders/{order_id}")
async def get_order(
    order_id: str,
    orders: Annotated[OrderStore, Depends(get_order_store)],
):
    return orders.get_order(order_id).to_wire()


@app.post("/api/orders", status_code=201)
@limiter.limit(_order_rate_limit)
async def create_order(
    request: Request,
    body: OrderPayload,
    constraints: Annotated[ConstraintStore, Depends(get_constraint_store)],
    orders: Annotated[OrderStore, Depends(get_order_store)],
):
    """
    Create an order.

    The configuration is re-checked against the current rules for its model;
    any violation rejects the whole write and every violated field is listed.
    """
    payload = recheck_order(body, constraints)
    return orders.create_order(payload).to_wire()


@app.put("/api/orders/{order_id}")
@limiter.limit(_order_rate_limit)
async def update_order(
    request: Request,
    order_id: str,
    body: OrderPayload,
    constraints: Annotated[ConstraintStore, Depends(get_constraint_store)],
    orders: Annotated[OrderStore, Depends(get_order_store)],
):
    """Update an order after the same re-check as on create."""
    orders.get_order(order_id)
    payload = recheck_order(body, constraints)
    return orders.update_order(order_id, payload).to_wire()
