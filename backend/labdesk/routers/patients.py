from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from ..dependencies import get_patient_resolver
from ..errors import SourcesUnavailableError
from ..models import ErrorResponse, PatientIdentityOut
from ..services.patient_resolver import PatientResolver

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/patients/{patient_id}/identity",
    response_model=PatientIdentityOut,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def patient_identity_endpoint(
    patient_id: str,
    appointment_id: Optional[str] = Query(default=None),
    resolver: PatientResolver = Depends(get_patient_resolver),
) -> Any:
    """Name, age and gender for a medical record number, reconciled across tables."""
    try:
        identity = await resolver.resolve(patient_id, appointment_id)
    except SourcesUnavailableError as e:
        logger.error(f"Patient identity lookup unavailable: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Patient data service unavailable", "errors": [str(err) for err in e.errors]},
        )
    if identity is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return PatientIdentityOut.from_identity(identity, patient_id)
