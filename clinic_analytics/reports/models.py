"""
Report Models

Pydantic models for the analytics reports: one record type per store entity
(nullable columns are Optional), one result type per report row, and the
request/response envelopes of the analytics endpoint.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Sentinels substituted for missing joins/fields so grouping keys stay well-formed
UNSPECIFIED_REGION = "Sin región"
UNSPECIFIED_SPECIALTY = "Sin especialidad"
UNSPECIFIED_GENDER = "No especificado"
UNSPECIFIED_PAYMENT_METHOD = "No especificado"
UNSPECIFIED_ORGANIZATION = "Sin organización"
UNTYPED_RESULT = "Sin tipo"
UNKNOWN = "Desconocido"
UNKNOWN_USER = "Usuario desconocido"
DEFAULT_CURRENCY = "USD"


class StoreRecord(BaseModel):
    """Base for rows read from the store; unknown columns are ignored"""
    model_config = ConfigDict(extra='ignore', frozen=True, coerce_numbers_to_str=True)

    @field_validator('*', mode='after')
    @classmethod
    def _assume_utc(cls, value):
        # Timestamps without an offset are stored in UTC
        if isinstance(value, datetime) and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


# ============================================================================
# ENTITY RECORDS
# ============================================================================

class Organization(StoreRecord):
    id: str
    name: Optional[str] = None


class MedicProfile(StoreRecord):
    """Doctor specialty, keyed by the doctor's user id"""
    user_id: str
    specialty: Optional[str] = None


class Patient(StoreRecord):
    id: str
    dob: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_validator('dob', mode='before')
    @classmethod
    def _date_part(cls, value):
        # Some rows store dob as a full timestamp
        if isinstance(value, str) and len(value) > 10:
            return value[:10]
        return value


class UnregisteredPatient(StoreRecord):
    id: str
    address: Optional[str] = None


class Consultation(StoreRecord):
    id: str
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    diagnosis: Optional[str] = None
    icd11_code: Optional[str] = None
    icd11_title: Optional[str] = None
    patient_id: Optional[str] = None
    unregistered_patient_id: Optional[str] = None
    doctor_id: Optional[str] = None

    # Attached by the join resolver
    patient: Optional[Patient] = None
    unregistered_patient: Optional[UnregisteredPatient] = None
    doctor: Optional[MedicProfile] = None


class Prescription(StoreRecord):
    id: str
    issued_at: Optional[datetime] = None
    doctor_id: Optional[str] = None

    doctor: Optional[MedicProfile] = None


class PrescriptionItem(StoreRecord):
    id: Optional[str] = None
    prescription_id: Optional[str] = None
    name: Optional[str] = None
    dosage: Optional[str] = None
    quantity: Optional[float] = None

    prescription: Optional[Prescription] = None


class Invoice(StoreRecord):
    id: Optional[str] = None
    fecha_emision: Optional[datetime] = None
    total: Optional[float] = None
    currency: Optional[str] = None
    metodo_pago: Optional[str] = None
    estado_pago: Optional[str] = None
    organization_id: Optional[str] = None
    doctor_id: Optional[str] = None

    @field_validator('total', mode='before')
    @classmethod
    def _blank_total(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class LabResult(StoreRecord):
    id: Optional[str] = None
    result_type: Optional[str] = None
    is_critical: Optional[bool] = None
    created_at: Optional[datetime] = None
    reported_at: Optional[datetime] = None
    ordering_provider_id: Optional[str] = None


class Message(StoreRecord):
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    read: Optional[bool] = None
    read_at: Optional[datetime] = None


class AuditLogEntry(StoreRecord):
    id: str
    user_name: Optional[str] = None
    action_type: Optional[str] = None
    entity_type: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Any] = None
    created_at: Optional[datetime] = None


class Appointment(StoreRecord):
    id: Optional[str] = None
    status: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    organization_id: Optional[str] = None

    organization: Optional[Organization] = None


# ============================================================================
# REPORT RESULTS
# ============================================================================

class DiagnosisCount(BaseModel):
    diagnosis: str
    count: int
    percentage: float


class ActionCount(BaseModel):
    action_type: str
    count: int


class AttendanceRow(BaseModel):
    organization: str
    completed: int
    cancelled: int
    scheduled: int
    total: int
    attendance_rate: float


class RevenuePeriod(BaseModel):
    period: str
    currency: str
    total_revenue: float
    count: int


class PatientCount(BaseModel):
    count: int


class DiagnosisRegionRow(BaseModel):
    region: str
    diagnosis: str
    icd11_code: Optional[str] = None
    icd11_title: Optional[str] = None
    specialty: str
    month: str
    count: int


class MedicationRow(BaseModel):
    specialty: str
    medication: str
    total_prescriptions: int
    avg_quantity: float
    common_dosages: List[str]


class DurationStats(BaseModel):
    avg_duration_minutes: int
    median_duration_minutes: int


class PaymentMethodRow(BaseModel):
    method: str
    count: int
    total_amount: float


class LabResultRow(BaseModel):
    result_type: str
    total_orders: int
    critical_count: int
    avg_turnaround_days: float


class DemographicRow(BaseModel):
    age_group: str
    gender: str
    count: int
    region: str


class GrowthRow(BaseModel):
    month: str
    new_patients: int
    total_patients: int


class CommunicationRow(BaseModel):
    date: str
    messages_sent: int
    response_rate: float
    avg_response_time_minutes: float


class AuditLogRow(BaseModel):
    id: str
    user_name: str
    action_type: Optional[str] = None
    module: Optional[str] = None
    timestamp: Optional[str] = None
    details: str


# ============================================================================
# ENDPOINT ENVELOPES
# ============================================================================

class ReportParams(BaseModel):
    """Optional parameters accepted by the analytics endpoint"""
    limit: Optional[int] = Field(None, description="Maximum rows for listing/top-N reports")
    organization_id: Optional[str] = Field(None, description="Organization scope")
    doctor_id: Optional[str] = Field(None, description="Doctor scope")
    region: Optional[str] = Field(None, description="Region filter for cross-tab reports")
    specialty: Optional[str] = Field(None, description="Specialty filter for cross-tab reports")
    group_by: Optional[str] = Field(None, description="Revenue period granularity (month or day)")

    @property
    def scope(self) -> Dict[str, Optional[str]]:
        return {'organization_id': self.organization_id, 'doctor_id': self.doctor_id}


class ReportResponse(BaseModel):
    """Success envelope"""
    data: Any


class ErrorResponse(BaseModel):
    """Failure envelope"""
    error: str


class ReportTypeInfo(BaseModel):
    """Entry of the report catalogue"""
    report_type: str
    description: str
    default_limit: Optional[int] = None
