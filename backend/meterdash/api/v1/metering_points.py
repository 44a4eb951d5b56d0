"""
Metering point API endpoints.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from meterdash.core.database import Database, get_database, get_db
from meterdash.models.schemas.readings import MeteringPointResponse, MeteringPointUpdate
from meterdash.services.readings_query import fetch_metering_points, rename_metering_point

router = APIRouter(prefix="/metering-points", tags=["Metering Points"])


@router.get("", response_model=List[MeteringPointResponse])
async def get_metering_points(database: Database = Depends(get_database)):
    return await fetch_metering_points(database)


@router.patch("/{gsrn}", response_model=MeteringPointResponse)
async def update_metering_point(
    gsrn: str,
    request: MeteringPointUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Set the display name of a metering point."""
    metering_point = await rename_metering_point(db, gsrn, request.name)
    if metering_point is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Metering point {gsrn} not found"
        )
    return metering_point
