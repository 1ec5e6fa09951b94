"""
Database engine initialisation and record loading for document rendering.
"""

import json
import sys
from typing import List, Optional

from sqlalchemy import create_engine, text

from clinicore.config import get_env
from clinicore.layouts import DocumentKind, get_template
from clinicore.models import (
    BillingLineItem,
    ClinicalEvent,
    DocumentRecord,
    PatientRecord,
    PrescriptionItem,
)


def init_engine():
    """Create a SQLAlchemy engine and verify the connection."""
    db_uri = get_env("DB_URI")
    engine = create_engine(db_uri, echo=False, future=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


# ── Loaders ──────────────────────────────────────────────────────────

def load_patient(engine, patient_id: str) -> PatientRecord:
    """Look up a patient by institution number (e.g. CMH-2024-0001)."""
    sql = text("""
        SELECT id, patient_id, first_name, middle_name, last_name, date_of_birth,
               gender, phone, email, address, emergency_contact_name,
               emergency_contact_phone, emergency_contact_relationship,
               allergies, medical_history, registration_date, is_active
        FROM patients
        WHERE patient_id = :pid
    """)
    with engine.connect() as conn:
        row = conn.execute(sql, {"pid": patient_id}).mappings().first()

    if not row:
        raise ValueError(f"No patient with number {patient_id}.")

    return PatientRecord(
        id=int(row["id"]),
        patient_id=str(row["patient_id"]),
        first_name=row["first_name"] or "",
        middle_name=row["middle_name"] or "",
        last_name=row["last_name"] or "",
        date_of_birth=row["date_of_birth"],
        gender=row["gender"] or "",
        phone=row["phone"] or "",
        email=row["email"] or "",
        address=row["address"] or "",
        emergency_contact_name=row["emergency_contact_name"] or "",
        emergency_contact_phone=row["emergency_contact_phone"] or "",
        emergency_contact_relationship=row["emergency_contact_relationship"] or "",
        allergies=row["allergies"] or "",
        medical_history=row["medical_history"] or "",
        registration_date=row["registration_date"],
        is_active=bool(row["is_active"]),
    )


def _event_from_row(row, patient_id: str) -> ClinicalEvent:
    details = row["details"]
    if isinstance(details, str):
        details = json.loads(details) if details.strip() else {}
    return ClinicalEvent(
        id=int(row["id"]),
        kind=str(row["kind"]),
        patient_id=patient_id,
        event_date=row["event_date"],
        clinician=row["clinician"] or "",
        fields=dict(details or {}),
    )


def load_clinical_event(engine, patient: PatientRecord, kind: str,
                        event_id: Optional[int] = None) -> Optional[ClinicalEvent]:
    """
    Return the requested clinical event, or the patient's latest event of *kind*
    when no id is given. None when the patient has no such event.
    """
    if event_id is not None:
        sql = text("""
            SELECT id, kind, event_date, clinician, details
            FROM clinical_events
            WHERE id = :eid AND patient_id = :ppk
        """)
        params = {"eid": event_id, "ppk": patient.id}
    else:
        sql = text("""
            SELECT id, kind, event_date, clinician, details
            FROM clinical_events
            WHERE patient_id = :ppk AND kind = :kind
            ORDER BY event_date DESC, id DESC
        """)
        params = {"ppk": patient.id, "kind": kind}

    with engine.connect() as conn:
        row = conn.execute(sql, params).mappings().first()

    if not row:
        if event_id is not None:
            raise ValueError(f"No clinical event {event_id} for patient {patient.patient_id}.")
        return None
    return _event_from_row(row, patient.patient_id)


def load_prescriptions(engine, patient: PatientRecord,
                       event_id: Optional[int] = None) -> List[PrescriptionItem]:
    """Active prescriptions for a patient, optionally limited to one encounter."""
    event_filter = "AND p.event_id = :eid" if event_id is not None else ""
    sql = text(f"""
        SELECT m.name AS medication, m.dosage_form, p.dosage, p.frequency,
               p.duration, p.quantity, p.instructions
        FROM prescriptions p
        JOIN medications m ON m.id = p.medication_id
        WHERE p.patient_id = :ppk
          AND p.status = 'active'
          {event_filter}
        ORDER BY p.date_issued, p.id
    """)
    with engine.connect() as conn:
        rows = conn.execute(sql, {"ppk": patient.id, "eid": event_id}).mappings().all()

    return [
        PrescriptionItem(
            medication=str(r["medication"]),
            dosage_form=r["dosage_form"] or "",
            dosage=r["dosage"] or "",
            frequency=r["frequency"] or "",
            duration=r["duration"] or "",
            quantity=r["quantity"],
            instructions=r["instructions"] or "",
        )
        for r in rows
    ]


def load_billing_items(engine, patient: PatientRecord) -> List[BillingLineItem]:
    """Billing rows for a patient in creation order; cancelled bills are excluded."""
    sql = text("""
        SELECT service_description, service_type, amount, total_amount,
               payment_status, created_at
        FROM billing
        WHERE patient_id = :ppk AND payment_status <> 'cancelled'
        ORDER BY created_at, id
    """)
    with engine.connect() as conn:
        rows = conn.execute(sql, {"ppk": patient.id}).mappings().all()

    return [
        BillingLineItem(
            description=str(r["service_description"]),
            service_type=r["service_type"] or "",
            quantity=1,
            unit_price=r["amount"],
            total=r["total_amount"],
            payment_status=r["payment_status"] or "pending",
            created_at=r["created_at"],
        )
        for r in rows
    ]


def fetch_document_record(engine, kind: str, patient_id: str,
                          event_id: Optional[int] = None,
                          invoice_number: str = "") -> DocumentRecord:
    """Assemble everything *kind* needs for one patient."""
    template = get_template(kind)
    patient = load_patient(engine, patient_id)
    record = DocumentRecord(patient=patient, invoice_number=invoice_number)

    if template.kind == DocumentKind.DETAILED_SERVICE_BILL:
        record.line_items = load_billing_items(engine, patient)
        return record

    record.event = load_clinical_event(engine, patient, template.kind.value, event_id)
    if template.kind == DocumentKind.PRESCRIPTION:
        record.prescriptions = load_prescriptions(
            engine, patient, record.event.id if record.event else None
        )
    if record.event is not None:
        record.admission_date = record.event.fields.get("date_of_admission")
    return record
