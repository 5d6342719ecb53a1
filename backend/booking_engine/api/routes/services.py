"""
Service catalog endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.db.session import get_db
from booking_engine.schemas.service import ServiceCreate, ServiceResponse
from booking_engine.services import catalog_service

router = APIRouter(prefix="/services", tags=["Services"])


@router.post("/", response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
async def create_service(service_data: ServiceCreate, db: AsyncSession = Depends(get_db)):
    service = await catalog_service.create_service(
        db,
        name=service_data.name,
        duration_minutes=service_data.duration_minutes,
        credits_required=service_data.credits_required,
        price_cents=service_data.price_cents,
        studio_id=service_data.studio_id,
    )
    await db.commit()
    return service


@router.get("/", response_model=list[ServiceResponse])
async def list_services(
    studio_id: Optional[int] = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    return await catalog_service.list_services(db, studio_id)


@router.get("/{service_id}", response_model=ServiceResponse)
async def get_service(service_id: int, db: AsyncSession = Depends(get_db)):
    return await catalog_service.get_service(db, service_id)
