"""
Unit tests for document layouts and rendering.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from clinicore.layouts import TEMPLATES, DocumentKind, UnknownDocumentKind, get_template
from clinicore.models import (
    BillingLineItem,
    ClinicalEvent,
    DocumentRecord,
    PatientRecord,
    PrescriptionItem,
)
from clinicore.renderer import bind, export_filename, render


GENERATED_ON = datetime(2024, 6, 15, 14, 30)


# ── Helpers ──────────────────────────────────────────────────────────

def make_patient(**overrides):
    values = dict(
        id=7,
        patient_id="CMH-2024-0001",
        first_name="Amani",
        last_name="Otieno",
        date_of_birth=date(2000, 6, 15),
        gender="Female",
        phone="0712 000 111",
        allergies="Penicillin",
        registration_date=date(2024, 6, 1),
    )
    values.update(overrides)
    return PatientRecord(**values)


def consultation_record():
    event = ClinicalEvent(
        id=31,
        kind="clinical-summary",
        patient_id="CMH-2024-0001",
        event_date=date(2024, 6, 5),
        clinician="Dr. Kamau",
        fields={
            "chief_complaint": "Poor sleep for two weeks",
            "history_of_presenting_illness": "Onset after exams",
            "impression": "Adjustment disorder",
            "investigations": "None",
            "final_diagnosis": "Adjustment disorder with anxiety",
            "management": "CBT, review in 2 weeks",
        },
    )
    return DocumentRecord(patient=make_patient(), event=event)


def bill_record():
    day = datetime(2024, 6, 5, 9, 0)
    items = [
        BillingLineItem("Consultation", 1, Decimal("500"), Decimal("500"), day, "paid"),
        BillingLineItem("Full haemogram", 1, Decimal("1200"), Decimal("1200"), day.replace(hour=11)),
        BillingLineItem("Paracetamol", 1, Decimal("300"), Decimal("300"), day.replace(hour=16)),
    ]
    return DocumentRecord(
        patient=make_patient(),
        line_items=items,
        invoice_number="INV-0042",
        payment_references={"mobile_money": "QWE123RTY"},
    )


# ── Tests: layouts ───────────────────────────────────────────────────

def test_every_kind_has_a_layout():
    assert set(TEMPLATES) == {k.value for k in DocumentKind}


def test_get_template_unknown_kind():
    with pytest.raises(UnknownDocumentKind) as e:
        get_template("horoscope")
    assert e.value.kind == "horoscope"


def test_clinical_summary_section_order():
    assert get_template(DocumentKind.CLINICAL_SUMMARY).section_labels == (
        "Presenting Complaints",
        "History of Presenting Illness",
        "Impression",
        "Investigations",
        "Final Diagnosis",
        "Management",
    )


def test_medical_report_sections_are_numbered():
    labels = get_template("medical-report").section_labels
    assert labels[0] == "1. Presenting Complaints"
    assert labels[-1] == "13. Prognosis"
    assert len(labels) == 13


# ── Tests: bind ──────────────────────────────────────────────────────

def test_bind_resolves_fallback_paths():
    bound = bind(get_template("clinical-summary"), consultation_record(), GENERATED_ON)
    by_key = {s.key: s for s in bound.sections}

    assert by_key["presenting_complaints"].value == "Poor sleep for two weeks"
    assert dict(by_key["patient"].fields) == {
        "PT Name(s)": "AMANI OTIENO",
        "Age": "24",
        "Gender": "FEMALE",
        "Date of Visit": "Jun 5, 2024",
        "OP No": "CMH-2024-0001",
    }


def test_bind_age_is_relative_to_generation_date():
    bound = bind(get_template("clinical-summary"), consultation_record(), datetime(2024, 6, 14, 9, 0))
    assert dict(bound.sections[0].fields)["Age"] == "23"


def test_bind_bill_groups_and_totals():
    bound = bind(get_template("detailed-service-bill"), bill_record(), GENERATED_ON)
    by_key = {s.key: s for s in bound.sections}

    day, rows = by_key["items"].groups[0]
    assert day == "Jun 5, 2024"
    assert [r["description"] for r in rows] == ["CONSULTATION", "FULL HAEMOGRAM", "PARACETAMOL"]
    assert rows[1] == {
        "number": "2.", "description": "FULL HAEMOGRAM",
        "quantity": "1.00", "unit_price": "1,200.00", "total": "1,200.00",
    }
    assert dict(by_key["totals"].fields)["Grand Total"] == "Ksh 2,000.00"
    assert dict(by_key["payment_summary"].fields) == {
        "Total Bill Amount": "Ksh 2,000.00",
        "Amount Paid": "Ksh 500.00",
        "Balance Due": "Ksh 1,500.00",
    }
    assert dict(by_key["details"].fields)["Print Date"] == "Saturday, June 15, 2024"
    assert dict(by_key["details"].fields)["Age"] == "24 Y 0 M 0 Days"

    checked = {i["key"]: i["reference"] for i in by_key["payment_details"].items if i["checked"]}
    assert checked == {"mobile_money": "QWE123RTY"}


def test_bind_prescription_items():
    record = DocumentRecord(
        patient=make_patient(),
        event=ClinicalEvent(kind="prescription", patient_id="CMH-2024-0001",
                            event_date=date(2024, 6, 5), clinician="Dr. Kamau"),
        prescriptions=[
            PrescriptionItem("Fluoxetine", "20mg", "Once daily", "30 days", 30, "tablets", "Take with food"),
        ],
    )
    bound = bind(get_template("prescription"), record, GENERATED_ON)
    meds = next(s for s in bound.sections if s.key == "medications")
    assert meds.items == [{
        "number": "1", "medication": "Fluoxetine", "dosage": "20mg",
        "frequency": "Once daily", "duration": "30 days",
        "quantity": "30 tablets", "instructions": "Take with food",
    }]
    assert bound.footer[0] == "This prescription is valid for 30 days from the date of issue"
    assert bound.footer[-1] == "Generated on Jun 15, 2024, 02:30 PM"


# ── Tests: render ────────────────────────────────────────────────────

def test_render_is_deterministic():
    first = render("clinical-summary", consultation_record(), generated_on=GENERATED_ON)
    second = render("clinical-summary", consultation_record(), generated_on=GENERATED_ON)
    assert first.content == second.content
    assert first.filename == second.filename


def test_render_html_section_order():
    doc = render("clinical-summary", consultation_record(), generated_on=GENERATED_ON)
    assert doc.media_type == "text/html"
    assert "CHILD MENTAL HAVEN" in doc.content
    positions = [doc.content.index(f"{label}:") for label in
                 get_template("clinical-summary").section_labels]
    assert positions == sorted(positions)


def test_render_unknown_kind_raises_before_rendering():
    with pytest.raises(UnknownDocumentKind):
        render("horoscope", None, generated_on=GENERATED_ON)


def test_render_unknown_output_format():
    with pytest.raises(ValueError, match="Unknown output format"):
        render("clinical-summary", consultation_record(), generated_on=GENERATED_ON, output="pdf")


@pytest.mark.parametrize("kind", [k.value for k in DocumentKind])
def test_render_with_missing_fields_prints_blanks(kind):
    record = DocumentRecord(patient=PatientRecord(patient_id="CMH-2024-0009"))
    doc = render(kind, record, generated_on=GENERATED_ON)
    assert "None" not in doc.content
    assert doc.filename.endswith("_CMH-2024-0009_2024-06-15.html")


def test_render_escapes_html():
    record = consultation_record()
    record.event.fields["management"] = "<script>alert(1)</script>"
    doc = render("clinical-summary", record, generated_on=GENERATED_ON)
    assert "<script>" not in doc.content
    assert "&lt;script&gt;" in doc.content


def test_render_text_bill():
    doc = render("detailed-service-bill", bill_record(), generated_on=GENERATED_ON, output="text")
    assert doc.media_type == "text/plain"
    assert doc.filename == "Service_Bill_CMH-2024-0001_2024-06-15.txt"
    assert "Patient Detailed Service Bill" in doc.content
    assert "Jun 5, 2024" in doc.content
    assert "FULL HAEMOGRAM" in doc.content
    assert "  Grand Total: Ksh 2,000.00" in doc.content
    assert "[x] Mobile Money (M-Pesa)  Code: QWE123RTY" in doc.content


def test_render_text_clinical_summary_blocks():
    doc = render("clinical-summary", consultation_record(), generated_on=GENERATED_ON, output="text")
    assert "Presenting Complaints:\n    Poor sleep for two weeks\n" in doc.content
    assert doc.content.endswith("Generated on Jun 15, 2024, 02:30 PM\n")


# ── Tests: export_filename ───────────────────────────────────────────

def test_export_filename():
    assert export_filename("clinical-summary", "CMH-2024-0001", date(2024, 6, 15)) == \
        "Clinical_Summary_CMH-2024-0001_2024-06-15"
    assert export_filename(DocumentKind.PRESCRIPTION, "CMH/2024 0001", date(2024, 6, 15), "html") == \
        "Prescription_CMH-2024-0001_2024-06-15.html"
