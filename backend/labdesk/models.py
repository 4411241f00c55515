"""
Pydantic models for request/response validation.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from .services.patient_resolver import PatientIdentity
from .services.range_classifier import Classification
from .services.result_sheet import ResultSheet, TemplateParameter


class ClassifyRequest(BaseModel):
    """A single entered value and the reference range printed on its template."""
    value: Optional[Union[str, float]] = Field(None, description="Raw value as entered")
    reference_range: Optional[str] = Field(None, description="Free-text reference range")


class ClassificationOut(BaseModel):
    status: str = Field(..., description="normal, abnormal or critical")
    direction: Optional[str] = Field(None, description="below or above when flagged")
    flag: str = Field("", description="Result sheet code: '', 'H/L' or 'C'")
    range_kind: Optional[str] = Field(None, description="bounded, upper or lower")
    reason: Optional[str] = Field(None, description="Why the value was not evaluated")

    @classmethod
    def from_classification(cls, c: Classification) -> "ClassificationOut":
        return cls(**c.as_dict())


class TemplateParameterIn(BaseModel):
    name: str = Field(..., description="Parameter key within the template")
    display_name: Optional[str] = None
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    required: bool = False
    order: int = 0

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Parameter name cannot be empty")
        return v.strip()

    def to_parameter(self) -> TemplateParameter:
        return TemplateParameter(**self.model_dump())


class EvaluateRequest(BaseModel):
    """Template parameters plus the values the technician entered for them."""
    parameters: List[TemplateParameterIn] = Field(..., min_length=1)
    values: Dict[str, Optional[Union[str, float]]] = Field(default_factory=dict)


class ParameterResultOut(ClassificationOut):
    name: str
    value: str
    unit: Optional[str] = None
    reference_range: Optional[str] = None


class ResultSheetOut(BaseModel):
    parameters: List[ParameterResultOut]
    overall_interpretation: str
    has_abnormal_values: bool
    has_critical_values: bool

    @classmethod
    def from_sheet(cls, sheet: ResultSheet) -> "ResultSheetOut":
        return cls(
            parameters=[
                ParameterResultOut(
                    name=p.name,
                    value=p.value,
                    unit=p.unit,
                    reference_range=p.reference_range,
                    **p.classification.as_dict(),
                )
                for p in sheet.parameters
            ],
            overall_interpretation=sheet.overall_interpretation.value,
            has_abnormal_values=sheet.has_abnormal_values,
            has_critical_values=sheet.has_critical_values,
        )


class PatientIdentityOut(BaseModel):
    patient_id: Optional[str] = Field(None, description="Medical record number looked up")
    name: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    source: Optional[str] = Field(None, description="Source of the resolved name")
    sources: List[str] = Field(default_factory=list)

    @classmethod
    def from_identity(cls, identity: PatientIdentity, patient_id: Optional[str]) -> "PatientIdentityOut":
        return cls(
            patient_id=patient_id,
            name=identity.name,
            age=identity.age,
            gender=identity.gender,
            source=identity.source,
            sources=list(identity.sources),
        )


class ErrorResponse(BaseModel):
    """Error response model."""
    detail: str = Field(..., description="Error message")
    errors: List[str] = Field(default_factory=list, description="Underlying failures, if any")
