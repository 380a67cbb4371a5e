# schemas/request_models.py
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from enum import Enum


class LastOperationState(str, Enum):
    """Broker-visible lifecycle states (OSBAPI spelling)"""
    IN_PROGRESS = "in progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Operation(str, Enum):
    """
    Opaque operation data handed back to the platform and echoed on
    last_operation polls. Persisted by the platform, so values must not change.
    """
    PROVISION = "provision"
    DEPROVISION = "deprovision"
    UPDATE = "update"
    BIND = "bind"
    UNBIND = "unbind"


# ============================================================================
# PROVIDER RESULTS
# ============================================================================

class OperationSpec(BaseModel):
    """Result of a lifecycle verb."""
    operation: Optional[Operation] = None
    is_async: bool = False


class BindingSpec(BaseModel):
    """Result of a bind. Credentials are only present for synchronous binds."""
    operation: Optional[Operation] = None
    is_async: bool = False
    credentials: Optional[Dict[str, Any]] = None


class LastOperationResult(BaseModel):
    state: LastOperationState
    description: str


# ============================================================================
# OSBAPI REQUEST BODIES
# ============================================================================

class ProvisionRequest(BaseModel):
    service_id: str
    plan_id: str
    organization_guid: Optional[str] = None
    space_guid: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    parameters: Optional[Dict[str, Any]] = None


class PreviousValues(BaseModel):
    plan_id: Optional[str] = None
    service_id: Optional[str] = None


class UpdateRequest(BaseModel):
    service_id: str
    plan_id: Optional[str] = None
    context: Optional[Dict[str, Any]] = None
    parameters: Optional[Dict[str, Any]] = None
    previous_values: Optional[PreviousValues] = None


class BindRequest(BaseModel):
    service_id: str
    plan_id: str
    app_guid: Optional[str] = None
    bind_resource: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None
    parameters: Optional[Dict[str, Any]] = None


# ============================================================================
# OSBAPI RESPONSE BODIES
# ============================================================================

class AsyncOperationResponse(BaseModel):
    operation: Optional[str] = None


class LastOperationResponse(BaseModel):
    state: LastOperationState
    description: Optional[str] = None


class BindingResponse(BaseModel):
    credentials: Optional[Dict[str, Any]] = None
    operation: Optional[str] = None


class ErrorResponse(BaseModel):
    error: Optional[str] = None
    description: str


class Plan(BaseModel):
    id: str
    name: str
    description: str
    free: bool = True
    bindable: bool = True
    plan_updateable: bool = False


class Service(BaseModel):
    id: str
    name: str
    description: str
    bindable: bool = True
    instances_retrievable: bool = False
    bindings_retrievable: bool = True
    plan_updateable: bool = False
    tags: List[str] = Field(default_factory=list)
    plans: List[Plan]


class CatalogResponse(BaseModel):
    services: List[Service]


class HealthResponse(BaseModel):
    status: str = "healthy"
    message: str = ""
    cloudformation_status: Optional[str] = None
