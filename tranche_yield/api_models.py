"""
API Request/Response Models
===========================

Pydantic models for API request validation and response serialization.
These models provide:

1. **Input Validation**: Automatic validation of request payloads.
2. **Documentation**: OpenAPI schema generation with examples.
3. **Type Safety**: Runtime type checking for API contracts.

Amounts are plain integers in the asset's native units; tranche shares are
integers in 10^27 fixed point. Both are carried as JSON integers.

See Also
--------
api_main : Main API module using these models.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Health Check Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response for monitoring systems."""

    status: str = Field(description="Overall service health", examples=["healthy"])
    instance_id: str = Field(description="Engine instance identifier")
    unlocked: bool = Field(description="Whether the engine has been initialized")
    distribution_count: int = Field(description="Committed distribution cycles")


# =============================================================================
# Request Models
# =============================================================================


class DistributionRequest(BaseModel):
    """Earnings pool for one distribution cycle."""

    total_earnings: int = Field(ge=0, description="Unit-of-account balance to allocate")


class SupplementRequest(BaseModel):
    """Ad hoc top-up split outside the cycle timer."""

    amount: int = Field(gt=0, description="Amount to split between the tranches")


class SuppliesUpdate(BaseModel):
    """Current adjusted tranche supplies reported by the ledger (standard scale)."""

    senior: int = Field(ge=0)
    junior: int = Field(ge=0)


class RecipientEntry(BaseModel):
    address: str = Field(min_length=1)
    weight_bips: int


class RecipientsUpdate(BaseModel):
    """Replacement recipient set; weights must sum to 10000."""

    recipients: List[RecipientEntry]


class InitializeRequest(BaseModel):
    """Optional recipient sets; engine defaults are used when omitted."""

    protocol_recipients: Optional[List[RecipientEntry]] = None
    residual_recipients: Optional[List[RecipientEntry]] = None


class BipsUpdate(BaseModel):
    bips: int = Field(description="New value in basis points")


class ProtocolFeeUpdate(BaseModel):
    bips: int = Field(description="New protocol fee rate in basis points")
    cap: int = Field(default=3000, description="Ceiling the new rate is checked against")


# =============================================================================
# Response Models
# =============================================================================


class RecipientAmount(BaseModel):
    address: str
    amount: int


class AllocationResponse(BaseModel):
    """Itemized allocation for one cycle."""

    cycle: int
    timestamp: int
    total_earnings: int
    protocol_fee: int
    post_fee_yield: int
    senior: int
    junior: int
    residual: int
    protocol_allocations: List[RecipientAmount]
    residual_allocations: List[RecipientAmount]
    regime: str = Field(examples=["shortfall", "catchup", "nominal"])
    senior_share: int
    junior_share: int
    yield_target: int
    config_version: int
    truncation_loss: int


class SupplementResponse(BaseModel):
    amount: int
    senior: int
    junior: int
    senior_share: int
    junior_share: int
    config_version: int


class PreviewResponse(BaseModel):
    config: Dict[str, Any]
    state: Dict[str, Any]
    recipients: Dict[str, List[RecipientEntry]]
    next_cycle_at: int
    yield_target: int
    senior_yield_target: int
    shortfall_senior_share: Optional[int] = None
    shortfall_junior_share: Optional[int] = None


class ParameterChangeResponse(BaseModel):
    """Old -> new record returned by every governed setter."""

    parameter: str
    old_value: Any = None
    new_value: Any = None
    config_version: int


class HistoryResponse(BaseModel):
    allocations: List[AllocationResponse]


class ChangeLogResponse(BaseModel):
    changes: List[Dict[str, Any]]


class ErrorResponse(BaseModel):
    error: str = Field(description="Exception class name", examples=["CycleNotElapsed"])
    detail: str
