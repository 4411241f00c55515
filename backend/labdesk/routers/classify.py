from __future__ import annotations

from fastapi import APIRouter, HTTPException

from ..errors import MissingParametersError
from ..models import ClassificationOut, ClassifyRequest, EvaluateRequest, ResultSheetOut
from ..services.range_classifier import classify
from ..services.result_sheet import evaluate_result_sheet

router = APIRouter()


@router.post("/classify", response_model=ClassificationOut)
async def classify_endpoint(payload: ClassifyRequest) -> ClassificationOut:
    return ClassificationOut.from_classification(classify(payload.value, payload.reference_range))


@router.post("/results/evaluate", response_model=ResultSheetOut)
async def evaluate_endpoint(payload: EvaluateRequest) -> ResultSheetOut:
    parameters = [p.to_parameter() for p in payload.parameters]
    try:
        sheet = evaluate_result_sheet(parameters, payload.values)
    except MissingParametersError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ResultSheetOut.from_sheet(sheet)
