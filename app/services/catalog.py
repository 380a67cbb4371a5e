# services/catalog.py
"""
Broker catalog: one SQS service with a standard and a fifo plan.
"""

from typing import Optional

from core.config import settings
from schemas.request_models import CatalogResponse, Plan, Service
from services.provisioner import PLAN_FIFO, PLAN_STANDARD


def build_catalog() -> CatalogResponse:
    plans = [
        Plan(
            id=settings.STANDARD_PLAN_ID,
            name=PLAN_STANDARD,
            description="A standard SQS queue with a secondary dead-letter queue",
        ),
        Plan(
            id=settings.FIFO_PLAN_ID,
            name=PLAN_FIFO,
            description="A FIFO SQS queue with a secondary dead-letter queue",
        ),
    ]
    service = Service(
        id=settings.SERVICE_ID,
        name=settings.SERVICE_NAME,
        description=settings.SERVICE_DESCRIPTION,
        tags=["aws", "sqs", "queue"],
        plans=plans,
    )
    return CatalogResponse(services=[service])


def plan_name_for(service_id: str, plan_id: str) -> Optional[str]:
    """Resolve a plan id to its plan name, or None if the catalog has no such plan."""
    for service in build_catalog().services:
        if service.id != service_id:
            continue
        for plan in service.plans:
            if plan.id == plan_id:
                return plan.name
    return None
