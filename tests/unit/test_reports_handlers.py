"""
================================================================================
Clinic Analytics - Report Handlers Unit Tests
================================================================================
Developed by Waqqas Hanafi
Calaveras County Health and Human Services Agency

Description:
    Unit tests for the report handlers, checking the reads each report
    issues against the store: anchor ranges, scope filters, selected
    columns and the bounded number of round trips per report.

Test Coverage:
    - Round trips per report (independent of row count)
    - Scope filters applied to the right entities
    - Paid-invoice and not-null filters
    - Count-only reads
    - Ordering and limit pushed to the store

================================================================================
"""
import pytest
from datetime import datetime, timezone

from clinic_analytics.reports.handlers import (
    PAID_STATUS,
    AuditReports,
    EpidemiologyReports,
    FinancialReports,
    LaboratoryReports,
    OperationsReports,
    PatientReports,
    PharmacyReports,
    ReportRequest,
    build_handlers,
)
from clinic_analytics.reports.models import ReportParams

START = datetime(2024, 1, 1, tzinfo=timezone.utc)
END = datetime(2024, 3, 31, 23, 59, 59, tzinfo=timezone.utc)
NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def make_request(limit=None, **params):
    return ReportRequest(start=START, end=END, params=ReportParams(**params), now=NOW, limit=limit)


def queried_tables(store):
    return [query.table for query in store.query_log]


class TestRoundTrips:
    """Test the number of store reads per report"""

    def test_diagnosis_by_region_reads(self, report_service, memory_store):
        """Test one consultation read plus one IN read per parent entity"""
        EpidemiologyReports(report_service).get_diagnosis_by_region(make_request())

        tables = queried_tables(memory_store)
        assert tables[0] == 'consultation'
        assert sorted(tables[1:]) == ['medic_profile', 'patient', 'unregisteredpatients']

    def test_round_trips_independent_of_row_count(self, clinic_tables, memory_store, report_service):
        """Test extra consultations do not add store reads"""
        for i in range(50):
            clinic_tables['consultation'].append({
                'id': f'extra{i}', 'created_at': '2024-03-10T10:00:00Z', 'diagnosis': 'Gripe',
                'patient_id': 'p1', 'doctor_id': 'd1'
            })
        memory_store.tables['consultation'] = clinic_tables['consultation']

        EpidemiologyReports(report_service).get_diagnosis_by_region(make_request())
        assert len(memory_store.query_log) == 4

    def test_parent_keys_are_distinct(self, report_service, memory_store):
        """Test each IN read carries distinct keys only"""
        EpidemiologyReports(report_service).get_diagnosis_by_region(make_request())

        patient_query = next(q for q in memory_store.query_log if q.table == 'patient')
        assert sorted(patient_query.members['id']) == ['p1', 'p2']

    def test_pharmacy_reads(self, report_service, memory_store):
        """Test prescriptions then items and profiles"""
        PharmacyReports(report_service).get_medications(make_request(limit=20))

        tables = queried_tables(memory_store)
        assert tables[0] == 'prescription'
        assert sorted(tables[1:]) == ['medic_profile', 'prescription_item']

    def test_no_parent_reads_when_nothing_matches(self, report_service, memory_store):
        """Test empty child sets skip the lookups"""
        empty = ReportRequest(
            start=datetime(2020, 1, 1, tzinfo=timezone.utc),
            end=datetime(2020, 1, 31, tzinfo=timezone.utc),
            params=ReportParams(),
            now=NOW
        )
        assert EpidemiologyReports(report_service).get_diagnosis_by_region(empty) == []
        assert PharmacyReports(report_service).get_medications(empty) == []
        assert queried_tables(memory_store) == ['consultation', 'prescription']


class TestQueryShapes:
    """Test filters pushed to the store"""

    def test_top_diagnoses_query(self, report_service, memory_store):
        """Test anchor range and not-null diagnosis"""
        EpidemiologyReports(report_service).get_top_diagnoses(make_request())

        query = memory_store.query_log[0]
        assert query.time_range.field == 'created_at'
        assert query.time_range.start == START
        assert query.not_null == ['diagnosis']

    def test_revenue_reads_paid_invoices(self, report_service, memory_store):
        """Test the paid status filter"""
        FinancialReports(report_service).get_revenue(make_request())

        query = memory_store.query_log[0]
        assert query.table == 'facturacion'
        assert query.time_range.field == 'fecha_emision'
        assert query.equals == {'estado_pago': PAID_STATUS}

    def test_organization_scope(self, report_service, memory_store):
        """Test organization scope reaches invoices and appointments"""
        FinancialReports(report_service).get_payment_methods(make_request(organization_id='o1'))
        OperationsReports(report_service).get_appointment_stats(make_request(organization_id='o1'))

        assert memory_store.query_log[0].equals['organization_id'] == 'o1'
        assert memory_store.query_log[1].equals == {'organization_id': 'o1'}

    def test_doctor_scope(self, report_service, memory_store):
        """Test doctor scope on consultations and lab results"""
        EpidemiologyReports(report_service).get_top_diagnoses(make_request(doctor_id='d1'))
        LaboratoryReports(report_service).get_lab_results(make_request(doctor_id='d1'))

        assert memory_store.query_log[0].equals == {'doctor_id': 'd1'}
        assert memory_store.query_log[1].equals == {'ordering_provider_id': 'd1'}

    def test_doctor_scope_ignored_for_patients(self, report_service, memory_store):
        """Test scope params are dropped for entities without the column"""
        PatientReports(report_service).get_demographics(make_request(doctor_id='d1'))
        assert memory_store.query_log[0].equals == {}

    def test_audit_logs_order_and_limit(self, report_service, memory_store):
        """Test ordering and limit are pushed to the store"""
        rows = AuditReports(report_service).get_audit_logs(make_request(limit=3))

        query = memory_store.query_log[0]
        assert query.order_by == 'created_at'
        assert query.descending is True
        assert query.limit == 3
        assert len(rows) == 3

    def test_patient_count_is_count_only(self, report_service, memory_store):
        """Test patient-count does not read rows"""
        result = PatientReports(report_service).get_patient_count(make_request())
        assert result.count == 3


class TestBuildHandlers:
    """Test handler registry"""

    def test_areas(self, report_service):
        """Test every dashboard area has a handler sharing the service"""
        handlers = build_handlers(report_service)
        assert set(handlers) == {
            'epidemiology', 'pharmacy', 'operations', 'financial',
            'laboratory', 'patients', 'communication', 'audit'
        }
        assert all(h.service is report_service for h in handlers.values())
