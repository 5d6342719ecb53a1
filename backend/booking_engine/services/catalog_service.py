"""
Service catalog: duration and credit cost per session type.

Bookings copy both values at creation; editing a service never changes
bookings that already exist.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.core.errors import NotFound
from booking_engine.core.logging import get_logger
from booking_engine.models.service import Service

logger = get_logger(__name__)


async def create_service(
    db: AsyncSession,
    name: str,
    duration_minutes: int,
    credits_required: Decimal = Decimal("1"),
    price_cents: int = 0,
    studio_id: Optional[int] = None,
) -> Service:
    service = Service(
        name=name,
        duration_minutes=duration_minutes,
        credits_required=credits_required,
        price_cents=price_cents,
        studio_id=studio_id,
    )
    db.add(service)
    await db.flush()
    await db.refresh(service)

    logger.info(
        "service_created",
        service_id=service.id,
        name=name,
        duration=duration_minutes,
        credits=str(credits_required),
    )
    return service


async def get_service(db: AsyncSession, service_id: int, active_only: bool = True) -> Service:
    service = await db.get(Service, service_id)
    if not service or (active_only and not service.is_active):
        raise NotFound(f"Service {service_id} not found", service_id=service_id)
    return service


async def list_services(db: AsyncSession, studio_id: Optional[int] = None) -> list[Service]:
    query = select(Service).where(Service.is_active.is_(True))
    if studio_id is not None:
        query = query.where(Service.studio_id == studio_id)
    result = await db.execute(query.order_by(Service.name))
    return list(result.scalars().all())
