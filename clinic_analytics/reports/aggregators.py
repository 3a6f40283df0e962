"""
Report Aggregators

Pure functions turning fetched (and joined) records into finished report
rows. Nothing here touches the store: every function takes records and
returns sorted, rounded results, so each report family can be tested on
plain fixtures.

Families:
    - frequency + percentage (top diagnoses, action distribution)
    - grouped sum/average (revenue, payment methods, medications)
    - filtered statistics with a plausibility clamp (durations, turnaround,
      response time)
    - cross-tab grouping (diagnosis by region, medication by specialty)
    - age-bucketed demographics
    - cumulative time series (patient growth)
    - plain listing (audit log)

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

import json
import math
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .formatting import (
    day_label,
    month_label,
    round_half_away,
    sort_desc,
    take,
    to_local,
)
from .models import (
    DEFAULT_CURRENCY,
    UNKNOWN,
    UNKNOWN_USER,
    UNSPECIFIED_GENDER,
    UNSPECIFIED_ORGANIZATION,
    UNSPECIFIED_PAYMENT_METHOD,
    UNSPECIFIED_REGION,
    UNSPECIFIED_SPECIALTY,
    UNTYPED_RESULT,
    ActionCount,
    Appointment,
    AttendanceRow,
    AuditLogEntry,
    AuditLogRow,
    CommunicationRow,
    Consultation,
    DemographicRow,
    DiagnosisCount,
    DiagnosisRegionRow,
    DurationStats,
    GrowthRow,
    Invoice,
    LabResult,
    LabResultRow,
    MedicationRow,
    MedicProfile,
    Message,
    Patient,
    PaymentMethodRow,
    PrescriptionItem,
    RevenuePeriod,
)

# Plausible ranges, exclusive at both ends
DURATION_RANGE_MINUTES = (0, 480)
TURNAROUND_RANGE_DAYS = (0, 365)
RESPONSE_RANGE_MINUTES = (0, 10080)

# Lower bound (inclusive) of each age bucket
AGE_BUCKETS = [
    (75, '75+'),
    (60, '60-74'),
    (45, '45-59'),
    (30, '30-44'),
    (18, '18-29'),
    (0, '0-17'),
]

DAYS_PER_YEAR = 365.25
SECONDS_PER_DAY = 24 * 60 * 60


# ============================================================================
# FREQUENCY + PERCENTAGE
# ============================================================================

def frequency_with_percentage(keys: Iterable[str]) -> List[Tuple[str, int, float]]:
    """
    Count each key and its share of the total.

    Returns:
        (key, count, percentage) sorted by count descending; ties keep the
        order keys were first seen. Percentages are 0 when there are no keys.
    """
    counts: Dict[str, int] = {}
    for key in keys:
        counts[key] = counts.get(key, 0) + 1

    total = sum(counts.values())
    rows = [
        (key, count, round_half_away(100 * count / total, 2) if total > 0 else 0.0)
        for key, count in counts.items()
    ]
    return sort_desc(rows, key=lambda row: row[1])


def top_diagnoses(consultations: Iterable[Consultation], limit: Optional[int] = None) -> List[DiagnosisCount]:
    keys = (c.diagnosis for c in consultations if c.diagnosis is not None)
    rows = [
        DiagnosisCount(diagnosis=key, count=count, percentage=percentage)
        for key, count, percentage in frequency_with_percentage(keys)
    ]
    return take(rows, limit)


def action_distribution(entries: Iterable[AuditLogEntry]) -> List[ActionCount]:
    keys = (e.action_type or UNKNOWN for e in entries)
    return [
        ActionCount(action_type=key, count=count)
        for key, count, _ in frequency_with_percentage(keys)
    ]


def appointment_status_counts(appointments: Iterable[Appointment]) -> Dict[str, int]:
    """status -> count, largest first"""
    keys = (a.status or UNKNOWN for a in appointments)
    return {key: count for key, count, _ in frequency_with_percentage(keys)}


def appointment_attendance(appointments: Iterable[Appointment]) -> List[AttendanceRow]:
    """Per-organization completed/cancelled/scheduled counts and attendance rate"""
    grouped: Dict[str, Dict[str, int]] = {}
    for appointment in appointments:
        organization = appointment.organization
        name = (organization.name if organization else None) or UNSPECIFIED_ORGANIZATION
        bucket = grouped.setdefault(name, {'completed': 0, 'cancelled': 0, 'scheduled': 0, 'total': 0})
        bucket['total'] += 1
        status = (appointment.status or '').upper()
        if status == 'COMPLETED':
            bucket['completed'] += 1
        elif status == 'CANCELLED':
            bucket['cancelled'] += 1
        elif status == 'SCHEDULED':
            bucket['scheduled'] += 1

    rows = [
        AttendanceRow(
            organization=name,
            attendance_rate=round_half_away(100 * b['completed'] / b['total'], 1) if b['total'] else 0.0,
            **b
        )
        for name, b in grouped.items()
    ]
    return sort_desc(rows, key='total')


# ============================================================================
# GROUPED SUM / AVERAGE
# ============================================================================

def revenue_by_period(
    invoices: Iterable[Invoice],
    group_by: str = 'month',
    tz: str = 'UTC'
) -> List[RevenuePeriod]:
    """
    Paid invoice totals grouped by (period, currency), largest first.

    Args:
        invoices: Invoices already restricted to paid ones
        group_by: 'month' ("ene 2024") or 'day' ("5/1/2024")
        tz: Timezone used to place invoices in periods
    """
    label = day_label if group_by == 'day' else month_label
    grouped: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for invoice in invoices:
        if invoice.fecha_emision is None:
            continue
        period = label(to_local(invoice.fecha_emision, tz))
        currency = invoice.currency or DEFAULT_CURRENCY
        bucket = grouped.setdefault((period, currency), {'total': 0.0, 'count': 0})
        bucket['total'] += invoice.total or 0.0
        bucket['count'] += 1

    rows = [
        RevenuePeriod(
            period=period,
            currency=currency,
            total_revenue=round_half_away(b['total'], 2),
            count=b['count']
        )
        for (period, currency), b in grouped.items()
    ]
    return sort_desc(rows, key='total_revenue')


def payment_method_totals(invoices: Iterable[Invoice]) -> List[PaymentMethodRow]:
    grouped: Dict[str, Dict[str, Any]] = {}
    for invoice in invoices:
        method = invoice.metodo_pago or UNSPECIFIED_PAYMENT_METHOD
        bucket = grouped.setdefault(method, {'count': 0, 'total': 0.0})
        bucket['count'] += 1
        bucket['total'] += invoice.total or 0.0

    rows = [
        PaymentMethodRow(method=method, count=b['count'], total_amount=round_half_away(b['total'], 2))
        for method, b in grouped.items()
    ]
    return sort_desc(rows, key='total_amount')


# ============================================================================
# FILTERED STATISTICS
# ============================================================================

def filtered_statistics(
    values: Iterable[float],
    lower: float,
    upper: float,
    decimals: int = 0
) -> Tuple[float, float]:
    """
    Mean and median of the values strictly inside (lower, upper).

    The median is the element at floor(n/2) of the sorted values (the upper
    of the two middle elements for even n), not the average of the middle
    pair; dashboards depend on this definition.

    Returns:
        (mean, median) rounded half away from zero; (0, 0) when no value
        survives the filter
    """
    kept = sorted(v for v in values if lower < v < upper)
    if not kept:
        return round_half_away(0, decimals), round_half_away(0, decimals)
    mean = sum(kept) / len(kept)
    median = kept[len(kept) // 2]
    return round_half_away(mean, decimals), round_half_away(median, decimals)


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def days_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / SECONDS_PER_DAY


def consultation_duration(consultations: Iterable[Consultation]) -> DurationStats:
    durations = [
        minutes_between(c.started_at, c.ended_at)
        for c in consultations
        if c.started_at is not None and c.ended_at is not None
    ]
    avg, median = filtered_statistics(durations, *DURATION_RANGE_MINUTES, decimals=0)
    return DurationStats(avg_duration_minutes=avg, median_duration_minutes=median)


def lab_result_stats(results: Iterable[LabResult]) -> List[LabResultRow]:
    grouped: Dict[str, Dict[str, Any]] = {}
    for result in results:
        result_type = result.result_type or UNTYPED_RESULT
        bucket = grouped.setdefault(result_type, {'total': 0, 'critical': 0, 'turnarounds': []})
        bucket['total'] += 1
        if result.is_critical:
            bucket['critical'] += 1
        if result.created_at is not None and result.reported_at is not None:
            bucket['turnarounds'].append(days_between(result.created_at, result.reported_at))

    rows = []
    for result_type, b in grouped.items():
        avg_days, _ = filtered_statistics(b['turnarounds'], *TURNAROUND_RANGE_DAYS, decimals=1)
        rows.append(LabResultRow(
            result_type=result_type,
            total_orders=b['total'],
            critical_count=b['critical'],
            avg_turnaround_days=avg_days
        ))
    return sort_desc(rows, key='total_orders')


def communication_metrics(messages: Iterable[Message], tz: str = 'UTC') -> List[CommunicationRow]:
    """Per-day sent count, read rate and mean time-to-read, in date order"""
    grouped: Dict[date, Dict[str, Any]] = {}
    for message in messages:
        if message.created_at is None:
            continue
        day = to_local(message.created_at, tz).date()
        bucket = grouped.setdefault(day, {'sent': 0, 'read': 0, 'response_times': []})
        bucket['sent'] += 1
        if message.read and message.read_at is not None:
            bucket['read'] += 1
            bucket['response_times'].append(minutes_between(message.created_at, message.read_at))

    rows = []
    for day in sorted(grouped):
        b = grouped[day]
        avg_minutes, _ = filtered_statistics(b['response_times'], *RESPONSE_RANGE_MINUTES, decimals=1)
        rows.append(CommunicationRow(
            date=day_label(day),
            messages_sent=b['sent'],
            response_rate=round_half_away(100 * b['read'] / b['sent'], 1) if b['sent'] else 0.0,
            avg_response_time_minutes=avg_minutes
        ))
    return rows


# ============================================================================
# CROSS-TAB GROUPING
# ============================================================================

def specialty_of(profile: Optional[MedicProfile]) -> str:
    return (profile.specialty if profile else None) or UNSPECIFIED_SPECIALTY


def region_of(consultation: Consultation) -> str:
    """Registered patient address, else unregistered patient address"""
    if consultation.patient and consultation.patient.address:
        return consultation.patient.address
    if consultation.unregistered_patient and consultation.unregistered_patient.address:
        return consultation.unregistered_patient.address
    return UNSPECIFIED_REGION


def diagnosis_by_region(
    consultations: Iterable[Consultation],
    tz: str = 'UTC',
    region: Optional[str] = None,
    specialty: Optional[str] = None
) -> List[DiagnosisRegionRow]:
    """
    Count consultations per (region, diagnosis, specialty, month).

    Consultations must carry their patient, unregistered patient and doctor
    profile (see joins.attach); unresolved joins fall back to sentinels.
    """
    grouped: Dict[Tuple[str, str, str, Tuple[int, int]], Dict[str, Any]] = {}
    for consultation in consultations:
        if consultation.diagnosis is None or consultation.created_at is None:
            continue
        row_region = region_of(consultation)
        row_specialty = specialty_of(consultation.doctor)
        if region is not None and row_region != region:
            continue
        if specialty is not None and row_specialty != specialty:
            continue

        local = to_local(consultation.created_at, tz)
        key = (row_region, consultation.diagnosis, row_specialty, (local.year, local.month))
        if key not in grouped:
            grouped[key] = {
                'region': row_region,
                'diagnosis': consultation.diagnosis,
                'icd11_code': consultation.icd11_code,
                'icd11_title': consultation.icd11_title,
                'specialty': row_specialty,
                'month': month_label(local),
                'count': 0,
            }
        grouped[key]['count'] += 1

    rows = [DiagnosisRegionRow(**values) for values in grouped.values()]
    return sort_desc(rows, key='count')


def pharmacy_medications(
    items: Iterable[PrescriptionItem],
    limit: Optional[int] = 20,
    specialty: Optional[str] = None
) -> List[MedicationRow]:
    """
    Prescribed medications per (prescriber specialty, medication name).

    Items must carry their prescription, which carries the doctor profile.
    """
    grouped: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for item in items:
        if item.name is None:
            continue
        prescription = item.prescription
        row_specialty = specialty_of(prescription.doctor if prescription else None)
        if specialty is not None and row_specialty != specialty:
            continue

        bucket = grouped.setdefault((row_specialty, item.name), {'total': 0, 'quantities': [], 'dosages': {}})
        bucket['total'] += 1
        if item.quantity is not None:
            bucket['quantities'].append(item.quantity)
        if item.dosage:
            bucket['dosages'].setdefault(item.dosage, None)

    rows = [
        MedicationRow(
            specialty=row_specialty,
            medication=medication,
            total_prescriptions=b['total'],
            avg_quantity=round_half_away(sum(b['quantities']) / len(b['quantities']), 2) if b['quantities'] else 0.0,
            common_dosages=list(b['dosages'])
        )
        for (row_specialty, medication), b in grouped.items()
    ]
    return take(sort_desc(rows, key='total_prescriptions'), limit)


# ============================================================================
# DEMOGRAPHICS
# ============================================================================

def age_in_years(dob: date, now: datetime) -> int:
    """Whole years between dob (midnight UTC) and now, using 365.25-day years"""
    born = datetime(dob.year, dob.month, dob.day, tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return math.floor((now - born).total_seconds() / (DAYS_PER_YEAR * SECONDS_PER_DAY))


def age_group(dob: Optional[date], now: datetime) -> str:
    if dob is None:
        return UNKNOWN
    age = age_in_years(dob, now)
    for lower, label in AGE_BUCKETS:
        if age >= lower:
            return label
    return '0-17'


def patient_demographics(patients: Iterable[Patient], now: datetime) -> List[DemographicRow]:
    grouped: Dict[Tuple[str, str, str], int] = {}
    for patient in patients:
        key = (
            age_group(patient.dob, now),
            patient.gender or UNSPECIFIED_GENDER,
            patient.address or UNSPECIFIED_REGION,
        )
        grouped[key] = grouped.get(key, 0) + 1

    rows = [
        DemographicRow(age_group=group, gender=gender, region=region, count=count)
        for (group, gender, region), count in grouped.items()
    ]
    return sort_desc(rows, key='count')


# ============================================================================
# CUMULATIVE TIME SERIES
# ============================================================================

def patient_growth(patients: Iterable[Patient], tz: str = 'UTC') -> List[GrowthRow]:
    """New patients per calendar month with a running total, oldest month first"""
    monthly: Dict[Tuple[int, int], int] = {}
    for patient in patients:
        if patient.created_at is None:
            continue
        local = to_local(patient.created_at, tz)
        key = (local.year, local.month)
        monthly[key] = monthly.get(key, 0) + 1

    rows = []
    running_total = 0
    for year, month in sorted(monthly):
        running_total += monthly[(year, month)]
        rows.append(GrowthRow(
            month=month_label(date(year, month, 1)),
            new_patients=monthly[(year, month)],
            total_patients=running_total
        ))
    return rows


# ============================================================================
# LISTING
# ============================================================================

def audit_details(entry: AuditLogEntry) -> str:
    """Description, or the metadata serialised as compact JSON"""
    if entry.description:
        return entry.description
    return json.dumps(entry.metadata or {}, separators=(',', ':'), ensure_ascii=False, default=str)


def audit_listing(entries: Sequence[AuditLogEntry], limit: Optional[int] = 100) -> List[AuditLogRow]:
    """Most recent entries first, truncated to limit"""
    dated = [e for e in entries if e.created_at is not None]
    undated = [e for e in entries if e.created_at is None]
    ordered = sort_desc(dated, key='created_at') + undated

    return [
        AuditLogRow(
            id=entry.id,
            user_name=entry.user_name or UNKNOWN_USER,
            action_type=entry.action_type,
            module=entry.entity_type,
            timestamp=entry.created_at.isoformat() if entry.created_at else None,
            details=audit_details(entry)
        )
        for entry in take(ordered, limit)
    ]
