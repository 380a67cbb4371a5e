# routers/router.py
"""
FastAPI Router for the Open Service Broker API (v2)

Thin surface over SQSProvider: resolves plans through the catalog, enforces
accepts_incomplete, and turns provider results into OSBAPI status codes.
BrokerErrors are rendered by the exception handler registered in main.py.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from core.auth import AuthenticatedPrincipal, verify_basic_auth
from core.logger import logger
from core.rate_limiter import limit_param, limiter
from schemas.request_models import (
    AsyncOperationResponse,
    BindingResponse,
    BindRequest,
    CatalogResponse,
    ErrorResponse,
    HealthResponse,
    LastOperationResponse,
    ProvisionRequest,
    UpdateRequest,
)
from services.catalog import build_catalog, plan_name_for
from services.errors import AsyncRequiredError, BadParametersError
from services.provisioner import SQSProvider, get_provider


# ============================================================================
# ROUTER CONFIGURATION
# ============================================================================

router = APIRouter(
    tags=["Service Broker"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request"},
        401: {"description": "Unauthorized - Invalid broker credentials"},
        429: {"description": "Too Many Requests"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"}
    }
)


def provider() -> SQSProvider:
    return get_provider()


def _require_async(accepts_incomplete: bool) -> None:
    if not accepts_incomplete:
        raise AsyncRequiredError()


def _resolve_plan(service_id: str, plan_id: str) -> str:
    plan_name = plan_name_for(service_id, plan_id)
    if plan_name is None:
        raise BadParametersError(f"unknown plan {plan_id!r} for service {service_id!r}")
    return plan_name


# ============================================================================
# HEALTH CHECK ENDPOINTS
# ============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Service Health Check",
    description="Validates CloudFormation connectivity"
)
@limiter.limit(limit_param)
async def check_health(
    request: Request,
    sqs_provider: SQSProvider = Depends(provider)
) -> HealthResponse:
    health_status = HealthResponse(
        status="healthy",
        message="SQS service broker is operational"
    )

    try:
        await sqs_provider.client.check_connection()
        health_status.cloudformation_status = "connected"
    except Exception as e:
        logger.error(f"CloudFormation health check failed: {e}")
        health_status.cloudformation_status = f"error: {str(e)[:100]}"
        health_status.status = "degraded"

    return health_status


# ============================================================================
# CATALOG
# ============================================================================

@router.get(
    "/v2/catalog",
    response_model=CatalogResponse,
    response_model_exclude_none=True,
    summary="Service Catalog"
)
@limiter.limit(limit_param)
async def get_catalog(
    request: Request,
    principal: AuthenticatedPrincipal = Depends(verify_basic_auth)
) -> CatalogResponse:
    return build_catalog()


# ============================================================================
# SERVICE INSTANCES
# ============================================================================

@router.put(
    "/v2/service_instances/{instance_id}",
    response_model=AsyncOperationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Provision a queue pair"
)
@limiter.limit(limit_param)
async def provision_instance(
    request: Request,
    instance_id: str,
    body: ProvisionRequest,
    accepts_incomplete: bool = Query(False),
    principal: AuthenticatedPrincipal = Depends(verify_basic_auth),
    sqs_provider: SQSProvider = Depends(provider)
) -> AsyncOperationResponse:
    _require_async(accepts_incomplete)
    plan_name = _resolve_plan(body.service_id, body.plan_id)

    spec = await sqs_provider.provision(instance_id, plan_name, body.service_id, body.parameters)

    logger.info(
        f"Provision accepted: instance={instance_id}, plan={plan_name}",
        extra={"request_id": principal.request_id}
    )
    return AsyncOperationResponse(operation=spec.operation.value)


@router.patch(
    "/v2/service_instances/{instance_id}",
    response_model=AsyncOperationResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Update queue settings"
)
@limiter.limit(limit_param)
async def update_instance(
    request: Request,
    instance_id: str,
    body: UpdateRequest,
    accepts_incomplete: bool = Query(False),
    principal: AuthenticatedPrincipal = Depends(verify_basic_auth),
    sqs_provider: SQSProvider = Depends(provider)
) -> AsyncOperationResponse:
    _require_async(accepts_incomplete)
    previous_plan_id = body.previous_values.plan_id if body.previous_values else None
    if body.plan_id and previous_plan_id and body.plan_id != previous_plan_id:
        raise BadParametersError("changing plans is not supported")

    spec = await sqs_provider.update(instance_id, body.parameters)

    logger.info(
        f"Update accepted: instance={instance_id}",
        extra={"request_id": principal.request_id}
    )
    return AsyncOperationResponse(operation=spec.operation.value)


@router.delete(
    "/v2/service_instances/{instance_id}",
    summary="Deprovision a queue pair"
)
@limiter.limit(limit_param)
async def deprovision_instance(
    request: Request,
    response: Response,
    instance_id: str,
    service_id: Optional[str] = Query(None),
    plan_id: Optional[str] = Query(None),
    accepts_incomplete: bool = Query(False),
    principal: AuthenticatedPrincipal = Depends(verify_basic_auth),
    sqs_provider: SQSProvider = Depends(provider)
) -> Dict[str, Any]:
    _require_async(accepts_incomplete)

    spec = await sqs_provider.deprovision(instance_id)

    logger.info(
        f"Deprovision: instance={instance_id}, async={spec.is_async}",
        extra={"request_id": principal.request_id}
    )
    if spec.is_async:
        response.status_code = status.HTTP_202_ACCEPTED
        return {"operation": spec.operation.value}
    response.status_code = status.HTTP_200_OK
    return {}


@router.get(
    "/v2/service_instances/{instance_id}/last_operation",
    response_model=LastOperationResponse,
    summary="Poll the last instance operation"
)
@limiter.limit(limit_param)
async def instance_last_operation(
    request: Request,
    instance_id: str,
    operation: Optional[str] = Query(None),
    service_id: Optional[str] = Query(None),
    plan_id: Optional[str] = Query(None),
    principal: AuthenticatedPrincipal = Depends(verify_basic_auth),
    sqs_provider: SQSProvider = Depends(provider)
) -> LastOperationResponse:
    result = await sqs_provider.last_operation(instance_id, operation)
    return LastOperationResponse(state=result.state, description=result.description)


# ============================================================================
# SERVICE BINDINGS
# ============================================================================

@router.put(
    "/v2/service_instances/{instance_id}/service_bindings/{binding_id}",
    response_model=BindingResponse,
    response_model_exclude_none=True,
    summary="Bind an application to a queue pair"
)
@limiter.limit(limit_param)
async def bind_instance(
    request: Request,
    response: Response,
    instance_id: str,
    binding_id: str,
    body: BindRequest,
    accepts_incomplete: bool = Query(False),
    principal: AuthenticatedPrincipal = Depends(verify_basic_auth),
    sqs_provider: SQSProvider = Depends(provider)
) -> BindingResponse:
    spec = await sqs_provider.bind(
        instance_id,
        binding_id,
        body.service_id,
        body.parameters,
        async_allowed=accepts_incomplete,
    )

    logger.info(
        f"Bind: instance={instance_id}, binding={binding_id}, async={spec.is_async}",
        extra={"request_id": principal.request_id}
    )
    if spec.is_async:
        response.status_code = status.HTTP_202_ACCEPTED
        return BindingResponse(operation=spec.operation.value)
    response.status_code = status.HTTP_201_CREATED
    return BindingResponse(credentials=spec.credentials)


@router.get(
    "/v2/service_instances/{instance_id}/service_bindings/{binding_id}",
    response_model=BindingResponse,
    response_model_exclude_none=True,
    summary="Fetch binding credentials"
)
@limiter.limit(limit_param)
async def get_binding(
    request: Request,
    instance_id: str,
    binding_id: str,
    principal: AuthenticatedPrincipal = Depends(verify_basic_auth),
    sqs_provider: SQSProvider = Depends(provider)
) -> BindingResponse:
    credentials = await sqs_provider.get_binding(instance_id, binding_id)
    return BindingResponse(credentials=credentials)


@router.delete(
    "/v2/service_instances/{instance_id}/service_bindings/{binding_id}",
    summary="Unbind an application"
)
@limiter.limit(limit_param)
async def unbind_instance(
    request: Request,
    response: Response,
    instance_id: str,
    binding_id: str,
    service_id: Optional[str] = Query(None),
    plan_id: Optional[str] = Query(None),
    accepts_incomplete: bool = Query(False),
    principal: AuthenticatedPrincipal = Depends(verify_basic_auth),
    sqs_provider: SQSProvider = Depends(provider)
) -> Dict[str, Any]:
    spec = await sqs_provider.unbind(instance_id, binding_id, async_allowed=accepts_incomplete)

    logger.info(
        f"Unbind: instance={instance_id}, binding={binding_id}, async={spec.is_async}",
        extra={"request_id": principal.request_id}
    )
    if spec.is_async:
        response.status_code = status.HTTP_202_ACCEPTED
        return {"operation": spec.operation.value}
    response.status_code = status.HTTP_200_OK
    return {}


@router.get(
    "/v2/service_instances/{instance_id}/service_bindings/{binding_id}/last_operation",
    response_model=LastOperationResponse,
    summary="Poll the last binding operation"
)
@limiter.limit(limit_param)
async def binding_last_operation(
    request: Request,
    instance_id: str,
    binding_id: str,
    operation: Optional[str] = Query(None),
    service_id: Optional[str] = Query(None),
    plan_id: Optional[str] = Query(None),
    principal: AuthenticatedPrincipal = Depends(verify_basic_auth),
    sqs_provider: SQSProvider = Depends(provider)
) -> LastOperationResponse:
    result = await sqs_provider.last_binding_operation(instance_id, binding_id, operation)
    return LastOperationResponse(state=result.state, description=result.description)
