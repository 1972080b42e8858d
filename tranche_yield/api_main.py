"""
Tranche Yield Allocation API
============================

HTTP surface for the ledger/treasury collaborator. Endpoints map one-to-one
onto :class:`~tranche_yield.engine.distributor.YieldDistributor` operations.

Access control uses the ``X-User-Role`` header:

- missing header -> 401
- role not allowed for the endpoint -> 403

Roles: ``governor`` (initialization and governed setters), ``keeper``
(distributions, supplements, supply reports), ``investor`` and ``auditor``
(read-only views).

Run locally::

    python -m uvicorn tranche_yield.api_main:app
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Optional, Type

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from .api_models import (
    AllocationResponse,
    BipsUpdate,
    ChangeLogResponse,
    DistributionRequest,
    ErrorResponse,
    HealthResponse,
    HistoryResponse,
    InitializeRequest,
    ParameterChangeResponse,
    PreviewResponse,
    ProtocolFeeUpdate,
    RecipientsUpdate,
    SupplementRequest,
    SupplementResponse,
    SuppliesUpdate,
)
from .config import settings
from .engine import (
    AllocationReportGenerator,
    AlreadyInitialized,
    CycleNotElapsed,
    DivisionByZero,
    EngineConfigLoader,
    InvalidParameter,
    InvalidRecipients,
    InvariantViolation,
    NotUnlocked,
    RecipientKind,
    ReentrantCall,
    StaticSupplyProvider,
    Unauthorized,
    YieldDistributor,
    YieldEngineError,
    build_engine,
)
from .engine.collaborators import allow_callers
from .engine.store import DistributionStateStore

settings.configure_logging()
logger = logging.getLogger("TrancheYield.API")

app = FastAPI(title="Tranche Yield Allocation API", version="1.0")

ROLE_GOVERNOR = "governor"
ROLE_KEEPER = "keeper"
ROLE_INVESTOR = "investor"
ROLE_AUDITOR = "auditor"

_STATUS_BY_ERROR: Dict[Type[YieldEngineError], int] = {
    Unauthorized: 403,
    NotUnlocked: 409,
    AlreadyInitialized: 409,
    CycleNotElapsed: 409,
    ReentrantCall: 409,
    InvalidRecipients: 422,
    InvalidParameter: 422,
    DivisionByZero: 422,
    InvariantViolation: 500,
}
_ERROR_RESPONSES: Dict[int, Dict[str, Any]] = {
    code: {"model": ErrorResponse} for code in (403, 409, 422)
}

# --- ENGINE (one instance per process) ---
_SUPPLIES = StaticSupplyProvider()
_ENGINE: Optional[YieldDistributor] = None
_ENGINE_LOCK = threading.Lock()


def _store() -> DistributionStateStore:
    return DistributionStateStore(settings.get_path("state_dir"))


def _build_default_engine() -> YieldDistributor:
    loader = EngineConfigLoader()
    if settings.engine_config_path:
        config = loader.load_from_path(settings.engine_config_path)
    else:
        config = loader.load_from_json(settings.engine_config_document())
    authorizer = allow_callers(settings.governor_roles)

    if settings.persist_state and config.instance_id in _store().list_instances():
        logger.info(f"Restoring engine '{config.instance_id}' from {settings.state_dir}")
        return _store().load(config.instance_id, _SUPPLIES, authorizer=authorizer)
    return build_engine(config, _SUPPLIES, authorizer=authorizer)


def get_engine() -> YieldDistributor:
    global _ENGINE
    if _ENGINE is None:
        with _ENGINE_LOCK:
            if _ENGINE is None:
                _ENGINE = _build_default_engine()
    return _ENGINE


def get_supply_provider() -> StaticSupplyProvider:
    return _SUPPLIES


def _persist(engine: YieldDistributor) -> None:
    if settings.persist_state:
        _store().save(engine)


def require_role(*roles: str) -> Callable[..., str]:
    """Build a dependency that admits only the given ``X-User-Role`` values."""

    def _dependency(x_user_role: Optional[str] = Header(default=None)) -> str:
        if not settings.require_rbac:
            return x_user_role or ""
        if not x_user_role:
            raise HTTPException(401, "Missing X-User-Role header")
        if x_user_role not in roles:
            raise HTTPException(403, f"Role '{x_user_role}' not permitted")
        return x_user_role

    return _dependency


@app.exception_handler(YieldEngineError)
async def _engine_error_handler(request: Request, exc: YieldEngineError) -> JSONResponse:
    status = next(
        (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)),
        400,
    )
    if status >= 500:
        logger.error(f"{request.url.path}: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# =============================================================================
# Read-only endpoints
# =============================================================================


@app.get("/health", response_model=HealthResponse)
def health(engine: YieldDistributor = Depends(get_engine)) -> HealthResponse:
    state = engine.state
    return HealthResponse(
        status="healthy",
        instance_id=engine.instance_id,
        unlocked=state.unlocked,
        distribution_count=state.distribution_count,
    )


@app.get("/preview", response_model=PreviewResponse)
def preview(
    engine: YieldDistributor = Depends(get_engine),
    role: str = Depends(require_role(ROLE_GOVERNOR, ROLE_KEEPER, ROLE_INVESTOR, ROLE_AUDITOR)),
) -> dict:
    return engine.get_allocation_preview().to_dict()


@app.get("/distributions", response_model=HistoryResponse)
def list_distributions(
    engine: YieldDistributor = Depends(get_engine),
    role: str = Depends(require_role(ROLE_GOVERNOR, ROLE_KEEPER, ROLE_INVESTOR, ROLE_AUDITOR)),
) -> dict:
    return {"allocations": [a.to_dict() for a in engine.history]}


@app.get("/distributions/report", response_class=Response)
def distribution_report(
    summary: bool = False,
    engine: YieldDistributor = Depends(get_engine),
    role: str = Depends(require_role(ROLE_GOVERNOR, ROLE_INVESTOR, ROLE_AUDITOR)),
) -> Response:
    """Committed allocation history as CSV; ``summary=true`` groups it by regime."""
    reporter = AllocationReportGenerator(engine.history)
    df = reporter.generate_share_summary() if summary else reporter.generate_allocation_report()
    return Response(
        content=df.to_csv(index=False),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{engine.instance_id}_allocations.csv"'},
    )


@app.get("/audit/changes", response_model=ChangeLogResponse)
def list_changes(
    parameter: Optional[str] = None,
    engine: YieldDistributor = Depends(get_engine),
    role: str = Depends(require_role(ROLE_GOVERNOR, ROLE_AUDITOR)),
) -> dict:
    changes = engine.audit_trail.changes
    if parameter:
        changes = engine.audit_trail.changes_for(parameter)
    return {"changes": [c.to_dict() for c in changes]}


# =============================================================================
# Keeper endpoints
# =============================================================================


@app.put("/supplies", response_model=SuppliesUpdate)
def report_supplies(
    update: SuppliesUpdate,
    supplies: StaticSupplyProvider = Depends(get_supply_provider),
    role: str = Depends(require_role(ROLE_KEEPER)),
) -> SuppliesUpdate:
    supplies.senior = update.senior
    supplies.junior = update.junior
    return update


@app.post("/distributions", response_model=AllocationResponse, responses=_ERROR_RESPONSES)
def run_distribution(
    request: DistributionRequest,
    engine: YieldDistributor = Depends(get_engine),
    role: str = Depends(require_role(ROLE_KEEPER)),
) -> dict:
    allocation = engine.run_distribution(request.total_earnings)
    _persist(engine)
    return allocation.to_dict()


@app.post("/supplements", response_model=SupplementResponse, responses=_ERROR_RESPONSES)
def supplement_yield(
    request: SupplementRequest,
    engine: YieldDistributor = Depends(get_engine),
    role: str = Depends(require_role(ROLE_KEEPER)),
) -> dict:
    return engine.supplement_yield(request.amount).to_dict()


# =============================================================================
# Governor endpoints
# =============================================================================


@app.post("/initialize", response_model=PreviewResponse, responses=_ERROR_RESPONSES)
def initialize(
    request: Optional[InitializeRequest] = None,
    engine: YieldDistributor = Depends(get_engine),
    role: str = Depends(require_role(ROLE_GOVERNOR)),
) -> dict:
    request = request or InitializeRequest()
    engine.initialize(
        caller=role,
        protocol_recipients=(
            [r.model_dump() for r in request.protocol_recipients]
            if request.protocol_recipients is not None
            else None
        ),
        residual_recipients=(
            [r.model_dump() for r in request.residual_recipients]
            if request.residual_recipients is not None
            else None
        ),
    )
    _persist(engine)
    return engine.get_allocation_preview().to_dict()


@app.put("/recipients/{kind}", response_model=ParameterChangeResponse, responses=_ERROR_RESPONSES)
def set_recipients(
    kind: RecipientKind,
    update: RecipientsUpdate,
    engine: YieldDistributor = Depends(get_engine),
    role: str = Depends(require_role(ROLE_GOVERNOR)),
) -> ParameterChangeResponse:
    previous = engine.set_recipients(kind, [r.model_dump() for r in update.recipients], caller=role)
    _persist(engine)
    return ParameterChangeResponse(
        parameter=f"{kind.value}_recipients",
        old_value=previous.to_list() if previous is not None else None,
        new_value=engine.recipients(kind).to_list(),
        config_version=engine.params.version,
    )


@app.put("/config/target-apy", response_model=ParameterChangeResponse, responses=_ERROR_RESPONSES)
def set_target_apy(
    update: BipsUpdate,
    engine: YieldDistributor = Depends(get_engine),
    role: str = Depends(require_role(ROLE_GOVERNOR)),
) -> ParameterChangeResponse:
    old = engine.set_target_apy(update.bips, caller=role)
    _persist(engine)
    return ParameterChangeResponse(
        parameter="target_apy_bips", old_value=old, new_value=update.bips,
        config_version=engine.params.version,
    )


@app.put("/config/target-ratio", response_model=ParameterChangeResponse, responses=_ERROR_RESPONSES)
def set_target_ratio(
    update: BipsUpdate,
    engine: YieldDistributor = Depends(get_engine),
    role: str = Depends(require_role(ROLE_GOVERNOR)),
) -> ParameterChangeResponse:
    old = engine.set_target_ratio(update.bips, caller=role)
    _persist(engine)
    return ParameterChangeResponse(
        parameter="target_ratio_bips", old_value=old, new_value=update.bips,
        config_version=engine.params.version,
    )


@app.put("/config/protocol-fee", response_model=ParameterChangeResponse, responses=_ERROR_RESPONSES)
def set_protocol_fee(
    update: ProtocolFeeUpdate,
    engine: YieldDistributor = Depends(get_engine),
    role: str = Depends(require_role(ROLE_GOVERNOR)),
) -> ParameterChangeResponse:
    old = engine.set_protocol_fee_rate(update.bips, caller=role, cap=update.cap)
    _persist(engine)
    return ParameterChangeResponse(
        parameter="protocol_fee_bips", old_value=old, new_value=update.bips,
        config_version=engine.params.version,
    )
