"""
================================================================================
Clinic Analytics - Unified Test Configuration and Fixtures
================================================================================
Developed by Waqqas Hanafi
Calaveras County Health and Human Services Agency

Description:
    Shared pytest configuration and fixtures for all tests (unit, API).
    Provides a small clinic dataset served from an in-memory row store,
    a fixed clock, and a wired dispatcher and test client.

Fixtures:
    - clinic_tables: Rows for every store table (Q1 2024 plus out-of-range rows)
    - memory_store: InMemoryRowStore seeded with clinic_tables
    - fixed_now: Clock value used for age calculations (2024-06-01 UTC)
    - report_service: ReportService over memory_store
    - dispatcher: ReportDispatcher over report_service
    - client: FastAPI test client serving memory_store
    - q1_range: (start, end) strings covering Q1 2024

Features:
    - Isolated, deterministic data per test
    - No network access

================================================================================
"""
import pytest
import sys
from pathlib import Path
from datetime import datetime, timezone

# Add project root to path for all tests
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from clinic_analytics.store import InMemoryRowStore
from clinic_analytics.reports.service import ReportService
from clinic_analytics.reports.dispatcher import ReportDispatcher


FIXED_NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def build_clinic_tables():
    """Rows keyed by store table name"""
    return {
        'organization': [
            {'id': 'o1', 'name': 'Clínica Norte'},
            {'id': 'o2', 'name': 'Clínica Sur'},
        ],
        'medic_profile': [
            {'user_id': 'd1', 'specialty': 'Cardiología'},
            {'user_id': 'd2', 'specialty': 'Pediatría'},
        ],
        'patient': [
            {'id': 'p1', 'dob': '1990-05-10', 'gender': 'F', 'address': 'Norte', 'created_at': '2024-01-05T09:00:00Z'},
            {'id': 'p2', 'dob': '2010-02-01', 'gender': 'M', 'address': 'Sur', 'created_at': '2024-01-20T09:00:00Z'},
            {'id': 'p3', 'dob': '1940-01-01', 'gender': None, 'address': None, 'created_at': '2024-02-15T09:00:00Z'},
            {'id': 'p4', 'dob': '1980-01-01', 'gender': 'F', 'address': 'Norte', 'created_at': '2023-12-31T09:00:00Z'},
        ],
        'unregisteredpatients': [
            {'id': 'u1', 'address': 'Centro', 'created_at': '2024-02-01T08:00:00Z'},
        ],
        'consultation': [
            {'id': 'c1', 'created_at': '2024-01-10T10:00:00Z', 'diagnosis': 'Gripe', 'icd11_code': '1E30',
             'icd11_title': 'Influenza', 'patient_id': 'p1', 'unregistered_patient_id': None, 'doctor_id': 'd1',
             'started_at': '2024-01-10T10:00:00Z', 'ended_at': '2024-01-10T10:30:00Z'},
            {'id': 'c2', 'created_at': '2024-01-15T10:00:00Z', 'diagnosis': 'Gripe', 'icd11_code': '1E30',
             'icd11_title': 'Influenza', 'patient_id': 'p2', 'unregistered_patient_id': None, 'doctor_id': 'd2',
             'started_at': '2024-01-15T10:00:00Z', 'ended_at': '2024-01-15T10:20:00Z'},
            {'id': 'c3', 'created_at': '2024-02-03T10:00:00Z', 'diagnosis': 'Diabetes', 'icd11_code': '5A11',
             'icd11_title': 'Diabetes mellitus tipo 2', 'patient_id': None, 'unregistered_patient_id': 'u1',
             'doctor_id': 'd1', 'started_at': '2024-02-03T10:00:00Z', 'ended_at': '2024-02-03T10:40:00Z'},
            {'id': 'c4', 'created_at': '2024-02-20T10:00:00Z', 'diagnosis': 'Gripe', 'icd11_code': '1E30',
             'icd11_title': 'Influenza', 'patient_id': 'p1', 'unregistered_patient_id': None, 'doctor_id': 'd3',
             'started_at': '2024-02-20T08:00:00Z', 'ended_at': '2024-02-20T18:00:00Z'},
            {'id': 'c5', 'created_at': '2024-03-01T10:00:00Z', 'diagnosis': None, 'icd11_code': None,
             'icd11_title': None, 'patient_id': 'p2', 'unregistered_patient_id': None, 'doctor_id': 'd2',
             'started_at': '2024-03-01T10:00:00Z', 'ended_at': '2024-03-01T10:10:00Z'},
            {'id': 'c6', 'created_at': '2023-12-20T10:00:00Z', 'diagnosis': 'Asma', 'icd11_code': 'CA23',
             'icd11_title': 'Asma', 'patient_id': 'p4', 'unregistered_patient_id': None, 'doctor_id': 'd1',
             'started_at': '2023-12-20T10:00:00Z', 'ended_at': '2023-12-20T10:15:00Z'},
        ],
        'prescription': [
            {'id': 'rx1', 'doctor_id': 'd1', 'issued_at': '2024-01-10T11:00:00Z'},
            {'id': 'rx2', 'doctor_id': 'd2', 'issued_at': '2024-02-10T11:00:00Z'},
            {'id': 'rx3', 'doctor_id': 'd1', 'issued_at': '2023-11-01T11:00:00Z'},
        ],
        'prescription_item': [
            {'id': 'i1', 'prescription_id': 'rx1', 'name': 'Paracetamol', 'dosage': '500mg', 'quantity': 10},
            {'id': 'i2', 'prescription_id': 'rx1', 'name': 'Ibuprofeno', 'dosage': '400mg', 'quantity': 20},
            {'id': 'i3', 'prescription_id': 'rx2', 'name': 'Paracetamol', 'dosage': '250mg', 'quantity': 5},
            {'id': 'i4', 'prescription_id': 'rx2', 'name': 'Paracetamol', 'dosage': '500mg', 'quantity': 15},
            {'id': 'i5', 'prescription_id': 'rx3', 'name': 'Amoxicilina', 'dosage': '875mg', 'quantity': 14},
            {'id': 'i6', 'prescription_id': 'rx1', 'name': None, 'dosage': '1g', 'quantity': 1},
        ],
        'appointment': [
            {'id': 'a1', 'organization_id': 'o1', 'status': 'COMPLETED', 'scheduled_at': '2024-01-05T09:00:00Z'},
            {'id': 'a2', 'organization_id': 'o1', 'status': 'COMPLETED', 'scheduled_at': '2024-01-06T09:00:00Z'},
            {'id': 'a3', 'organization_id': 'o1', 'status': 'CANCELLED', 'scheduled_at': '2024-02-01T09:00:00Z'},
            {'id': 'a4', 'organization_id': 'o2', 'status': 'SCHEDULED', 'scheduled_at': '2024-02-02T09:00:00Z'},
            {'id': 'a5', 'organization_id': 'o3', 'status': 'COMPLETED', 'scheduled_at': '2024-03-03T09:00:00Z'},
            {'id': 'a6', 'organization_id': 'o1', 'status': 'COMPLETED', 'scheduled_at': '2024-04-05T09:00:00Z'},
        ],
        'facturacion': [
            {'id': 'f1', 'total': 100.5, 'currency': 'USD', 'estado_pago': 'pagado', 'metodo_pago': 'tarjeta',
             'fecha_emision': '2024-01-10T12:00:00Z', 'organization_id': 'o1'},
            {'id': 'f2', 'total': 50, 'currency': None, 'estado_pago': 'pagado', 'metodo_pago': 'efectivo',
             'fecha_emision': '2024-01-20T12:00:00Z', 'organization_id': 'o2'},
            {'id': 'f3', 'total': 200, 'currency': 'USD', 'estado_pago': 'pendiente', 'metodo_pago': 'tarjeta',
             'fecha_emision': '2024-01-15T12:00:00Z', 'organization_id': 'o1'},
            {'id': 'f4', 'total': 300, 'currency': 'USD', 'estado_pago': 'pagado', 'metodo_pago': 'tarjeta',
             'fecha_emision': '2024-02-05T12:00:00Z', 'organization_id': 'o1'},
            {'id': 'f5', 'total': '', 'currency': 'USD', 'estado_pago': 'pagado', 'metodo_pago': None,
             'fecha_emision': '2024-02-06T12:00:00Z', 'organization_id': 'o2'},
        ],
        'lab_result': [
            {'id': 'l1', 'result_type': 'Hemograma', 'is_critical': True, 'ordering_provider_id': 'd1',
             'created_at': '2024-01-10T08:00:00Z', 'reported_at': '2024-01-12T08:00:00Z'},
            {'id': 'l2', 'result_type': 'Hemograma', 'is_critical': False, 'ordering_provider_id': 'd2',
             'created_at': '2024-01-11T00:00:00Z', 'reported_at': '2024-01-12T12:00:00Z'},
            {'id': 'l3', 'result_type': None, 'is_critical': False, 'ordering_provider_id': 'd1',
             'created_at': '2024-02-01T08:00:00Z', 'reported_at': None},
        ],
        'message': [
            {'id': 'm1', 'created_at': '2024-01-10T10:00:00Z', 'read': True, 'read_at': '2024-01-10T10:30:00Z'},
            {'id': 'm2', 'created_at': '2024-01-10T12:00:00Z', 'read': False, 'read_at': None},
            {'id': 'm3', 'created_at': '2024-01-11T09:00:00Z', 'read': True, 'read_at': '2024-01-11T09:15:00Z'},
        ],
        'audit_log': [
            {'id': f'log{i}', 'user_name': 'admin' if i % 2 else None,
             'action_type': 'LOGIN' if i % 3 else 'UPDATE', 'entity_type': 'patient',
             'description': f'Evento {i}' if i != 4 else None,
             'metadata': {'campo': 'valor'} if i == 4 else None,
             'created_at': f'2024-01-{i:02d}T08:00:00Z'}
            for i in range(1, 9)
        ],
    }


@pytest.fixture
def clinic_tables():
    """Clinic dataset rows keyed by table"""
    return build_clinic_tables()


@pytest.fixture
def memory_store(clinic_tables):
    """In-memory row store seeded with the clinic dataset"""
    return InMemoryRowStore(clinic_tables)


@pytest.fixture
def fixed_now():
    """Fixed 'now' for age calculations"""
    return FIXED_NOW


@pytest.fixture
def report_service(memory_store):
    """Report service over the seeded store"""
    return ReportService(memory_store, max_workers=4)


@pytest.fixture
def dispatcher(report_service):
    """Dispatcher with default limits and a fixed clock"""
    return ReportDispatcher(
        report_service,
        timezone_name='UTC',
        default_limits={'pharmacy-medications': 20, 'audit-logs': 100},
        clock=lambda: FIXED_NOW
    )


@pytest.fixture
def q1_range():
    """Q1 2024 as endpoint strings"""
    return '2024-01-01T00:00:00Z', '2024-03-31T23:59:59Z'


@pytest.fixture
def client(memory_store):
    """Create a FastAPI test client serving the seeded store"""
    from fastapi.testclient import TestClient
    from clinic_analytics.app import create_app
    return TestClient(create_app(store=memory_store, clock=lambda: FIXED_NOW))


@pytest.fixture
def project_root_path():
    """Return the project root path"""
    return project_root
