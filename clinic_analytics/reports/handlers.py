"""
Report Handlers (Business Logic Layer)

Report handlers grouped by dashboard area. Each handler method fetches the
rows its report needs through the ReportService, resolves foreign keys with
the join resolver and hands typed records to the matching aggregator.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from . import aggregators
from .filters import build_range_query
from .joins import JoinPolicy, Lookup, attach, build_index, distinct_keys, resolve
from .models import (
    Appointment,
    AuditLogEntry,
    Consultation,
    Invoice,
    LabResult,
    MedicProfile,
    Message,
    Organization,
    Patient,
    PatientCount,
    Prescription,
    PrescriptionItem,
    ReportParams,
    UnregisteredPatient,
)
from .service import ReportService, build_id_query

PAID_STATUS = 'pagado'


@dataclass
class ReportRequest:
    """Validated inputs of one report run"""
    start: datetime
    end: datetime
    params: ReportParams
    now: datetime
    timezone: str = 'UTC'
    limit: Optional[int] = None

    @property
    def scope(self) -> Dict[str, Optional[str]]:
        return self.params.scope


class EpidemiologyReports:
    """Handlers for diagnosis reports"""

    def __init__(self, service: ReportService):
        self.service = service

    def get_top_diagnoses(self, request: ReportRequest) -> list:
        """Most frequent diagnoses with their share of all diagnosed consultations"""
        query = build_range_query(
            'consultation', request.start, request.end,
            columns=['id', 'diagnosis', 'created_at'],
            not_null=['diagnosis'],
            scope=request.scope
        )
        consultations = [Consultation.model_validate(r) for r in self.service.fetch(query)]
        return aggregators.top_diagnoses(consultations, request.limit)

    def get_diagnosis_by_region(self, request: ReportRequest) -> list:
        """Diagnoses cross-tabulated by patient region, doctor specialty and month"""
        query = build_range_query(
            'consultation', request.start, request.end,
            columns=['id', 'diagnosis', 'icd11_code', 'icd11_title', 'created_at',
                     'patient_id', 'unregistered_patient_id', 'doctor_id'],
            not_null=['diagnosis'],
            scope=request.scope
        )
        consultations = [Consultation.model_validate(r) for r in self.service.fetch(query)]
        if not consultations:
            return []

        indexes = resolve(self.service, {
            'patients': (
                Lookup('patient', 'id', Patient, columns=('id', 'address')),
                distinct_keys(consultations, 'patient_id')
            ),
            'unregistered': (
                Lookup('unregistered_patient', 'id', UnregisteredPatient, columns=('id', 'address')),
                distinct_keys(consultations, 'unregistered_patient_id')
            ),
            'doctors': (
                Lookup('medic_profile', 'user_id', MedicProfile, columns=('user_id', 'specialty')),
                distinct_keys(consultations, 'doctor_id')
            ),
        })

        enriched = attach(consultations, indexes['patients'], 'patient_id', 'patient')
        enriched = attach(enriched, indexes['unregistered'], 'unregistered_patient_id', 'unregistered_patient')
        enriched = attach(enriched, indexes['doctors'], 'doctor_id', 'doctor')

        return aggregators.diagnosis_by_region(
            enriched, request.timezone,
            region=request.params.region,
            specialty=request.params.specialty
        )


class PharmacyReports:
    """Handlers for prescription reports"""

    def __init__(self, service: ReportService):
        self.service = service

    def get_medications(self, request: ReportRequest) -> list:
        """Medications prescribed per prescriber specialty"""
        query = build_range_query(
            'prescription', request.start, request.end,
            columns=['id', 'doctor_id', 'issued_at'],
            scope=request.scope
        )
        prescriptions = [Prescription.model_validate(r) for r in self.service.fetch(query)]
        if not prescriptions:
            return []

        # Items are required; the specialty is enrichment only
        rows = self.service.fetch_concurrently({
            'items': build_id_query(
                'prescription_item', 'prescription_id', distinct_keys(prescriptions, 'id'),
                columns=('id', 'prescription_id', 'name', 'dosage', 'quantity')
            ),
            'doctors': build_id_query(
                'medic_profile', 'user_id', distinct_keys(prescriptions, 'doctor_id'),
                columns=('user_id', 'specialty')
            ),
        }, optional={'doctors'})

        doctors = build_index([MedicProfile.model_validate(r) for r in rows['doctors']], 'user_id')
        prescriptions = attach(prescriptions, doctors, 'doctor_id', 'doctor')
        items = attach(
            [PrescriptionItem.model_validate(r) for r in rows['items']],
            build_index(prescriptions, 'id'),
            'prescription_id',
            'prescription'
        )

        return aggregators.pharmacy_medications(items, request.limit, specialty=request.params.specialty)


class OperationsReports:
    """Handlers for appointment and consultation operations"""

    def __init__(self, service: ReportService):
        self.service = service

    def _appointments(self, request: ReportRequest, columns: List[str]) -> List[Appointment]:
        query = build_range_query(
            'appointment', request.start, request.end,
            columns=columns,
            scope=request.scope
        )
        return [Appointment.model_validate(r) for r in self.service.fetch(query)]

    def get_appointment_stats(self, request: ReportRequest) -> Dict[str, int]:
        """Appointment count per status"""
        return aggregators.appointment_status_counts(self._appointments(request, ['id', 'status', 'scheduled_at']))

    def get_appointment_attendance(self, request: ReportRequest) -> list:
        """Attendance per organization"""
        appointments = self._appointments(request, ['id', 'status', 'scheduled_at', 'organization_id'])
        if not appointments:
            return []

        indexes = resolve(self.service, {
            'organizations': (
                Lookup('organization', 'id', Organization, columns=('id', 'name'), policy=JoinPolicy.OPTIONAL),
                distinct_keys(appointments, 'organization_id')
            ),
        })
        enriched = attach(appointments, indexes['organizations'], 'organization_id', 'organization')
        return aggregators.appointment_attendance(enriched)

    def get_consultation_duration(self, request: ReportRequest):
        """Average and median consultation length in minutes"""
        query = build_range_query(
            'consultation', request.start, request.end,
            columns=['id', 'started_at', 'ended_at', 'created_at'],
            not_null=['started_at', 'ended_at'],
            scope=request.scope
        )
        consultations = [Consultation.model_validate(r) for r in self.service.fetch(query)]
        return aggregators.consultation_duration(consultations)


class FinancialReports:
    """Handlers for billing reports"""

    def __init__(self, service: ReportService):
        self.service = service

    def _paid_invoices(self, request: ReportRequest, columns: List[str]) -> List[Invoice]:
        query = build_range_query(
            'invoice', request.start, request.end,
            columns=columns,
            equals={'estado_pago': PAID_STATUS},
            scope=request.scope
        )
        return [Invoice.model_validate(r) for r in self.service.fetch(query)]

    def get_revenue(self, request: ReportRequest) -> list:
        """Paid revenue per period and currency"""
        invoices = self._paid_invoices(request, ['id', 'total', 'currency', 'fecha_emision', 'estado_pago'])
        return aggregators.revenue_by_period(invoices, request.params.group_by or 'month', request.timezone)

    def get_payment_methods(self, request: ReportRequest) -> list:
        """Paid totals per payment method"""
        invoices = self._paid_invoices(request, ['id', 'metodo_pago', 'total', 'fecha_emision'])
        return aggregators.payment_method_totals(invoices)


class LaboratoryReports:
    """Handlers for lab result reports"""

    def __init__(self, service: ReportService):
        self.service = service

    def get_lab_results(self, request: ReportRequest) -> list:
        query = build_range_query(
            'lab_result', request.start, request.end,
            columns=['id', 'result_type', 'is_critical', 'created_at', 'reported_at'],
            scope=request.scope
        )
        results = [LabResult.model_validate(r) for r in self.service.fetch(query)]
        return aggregators.lab_result_stats(results)


class PatientReports:
    """Handlers for patient population reports"""

    def __init__(self, service: ReportService):
        self.service = service

    def get_patient_count(self, request: ReportRequest) -> PatientCount:
        query = build_range_query('patient', request.start, request.end)
        return PatientCount(count=self.service.count(query))

    def get_demographics(self, request: ReportRequest) -> list:
        query = build_range_query(
            'patient', request.start, request.end,
            columns=['id', 'dob', 'gender', 'address', 'created_at']
        )
        patients = [Patient.model_validate(r) for r in self.service.fetch(query)]
        return aggregators.patient_demographics(patients, request.now)

    def get_growth(self, request: ReportRequest) -> list:
        query = build_range_query(
            'patient', request.start, request.end,
            columns=['id', 'created_at']
        )
        patients = [Patient.model_validate(r) for r in self.service.fetch(query)]
        return aggregators.patient_growth(patients, request.timezone)


class CommunicationReports:
    """Handlers for messaging reports"""

    def __init__(self, service: ReportService):
        self.service = service

    def get_metrics(self, request: ReportRequest) -> list:
        query = build_range_query(
            'message', request.start, request.end,
            columns=['id', 'created_at', 'read', 'read_at']
        )
        messages = [Message.model_validate(r) for r in self.service.fetch(query)]
        return aggregators.communication_metrics(messages, request.timezone)


class AuditReports:
    """Handlers for audit log reports"""

    def __init__(self, service: ReportService):
        self.service = service

    def get_audit_logs(self, request: ReportRequest) -> list:
        """Most recent audit entries"""
        query = build_range_query(
            'audit_log', request.start, request.end,
            columns=['id', 'user_name', 'action_type', 'entity_type', 'description', 'metadata', 'created_at'],
            order_by='created_at',
            descending=True,
            limit=request.limit
        )
        entries = [AuditLogEntry.model_validate(r) for r in self.service.fetch(query)]
        return aggregators.audit_listing(entries, request.limit)

    def get_action_distribution(self, request: ReportRequest) -> list:
        query = build_range_query(
            'audit_log', request.start, request.end,
            columns=['id', 'action_type', 'created_at']
        )
        entries = [AuditLogEntry.model_validate(r) for r in self.service.fetch(query)]
        return aggregators.action_distribution(entries)


def build_handlers(service: ReportService) -> Dict[str, Any]:
    """Handler instances keyed by dashboard area"""
    return {
        'epidemiology': EpidemiologyReports(service),
        'pharmacy': PharmacyReports(service),
        'operations': OperationsReports(service),
        'financial': FinancialReports(service),
        'laboratory': LaboratoryReports(service),
        'patients': PatientReports(service),
        'communication': CommunicationReports(service),
        'audit': AuditReports(service),
    }
