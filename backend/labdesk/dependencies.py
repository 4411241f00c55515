"""
FastAPI dependencies wiring settings into the services.
"""

from __future__ import annotations

from typing import AsyncIterator

from fastapi import Depends, HTTPException, status

from .config import settings
from .services.data_access import RestDataAccess, TabularDataAccess
from .services.patient_resolver import PatientResolver, default_sources


async def get_data_access() -> AsyncIterator[TabularDataAccess]:
    """One REST client per request, closed when the response is sent."""
    if not settings.data_service_configured():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Patient data service is not configured",
        )
    async with RestDataAccess(
        settings.supabase_url,
        settings.supabase_key,
        timeout_s=settings.data_timeout_s,
    ) as data:
        yield data


def get_patient_resolver(data: TabularDataAccess = Depends(get_data_access)) -> PatientResolver:
    return PatientResolver(
        data,
        sources=default_sources(
            appointments_table=settings.appointments_table,
            patients_table=settings.patients_table,
            walk_in_table=settings.walk_in_table,
        ),
    )
