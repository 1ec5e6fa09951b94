"""
Fixed paper-form layouts, one per document kind.

A layout is an ordered tuple of section descriptors. Each descriptor names the
label printed on the form and the binding path(s) its value comes from. Paths
are dotted lookups into the binding context built by the renderer:

    patient.*   demographic fields (plus derived ``name_upper``, ``gender_upper``)
    event.*     clinical event fields (plus ``date`` and ``clinician``)
    record.*    bundle-level values (``invoice_number``, ``admission_date``)
    computed.*  values the renderer derives (ages, print dates, totals)

When a field lists several paths the first non-empty one wins.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple, Union

from clinicore.config import INSTITUTION_NAME, PRESCRIPTION_VALIDITY_DAYS


class UnknownDocumentKind(ValueError):
    """Raised when a document kind has no layout."""

    def __init__(self, kind):
        super().__init__(f"Unknown document kind: {kind!r}")
        self.kind = kind


class DocumentKind(str, Enum):
    CLINICAL_SUMMARY = "clinical-summary"
    DISCHARGE_SUMMARY = "discharge-summary"
    REFERRAL_OUT = "referral-out"
    MEDICAL_REPORT = "medical-report"
    PRESCRIPTION = "prescription"
    DETAILED_SERVICE_BILL = "detailed-service-bill"


# Section styles understood by every output backend
FIELDS = "fields"              # inline "LABEL: value" pairs
TEXT = "text"                  # label over a bordered free-text box
MEDICATIONS = "medications"    # numbered prescription items
BILLING = "billing"            # line items grouped by date
TOTALS = "totals"              # label / amount rows
CHECKLIST = "checklist"        # tick boxes with an optional reference code
SIGNATURE = "signature"        # labels over blank lines


@dataclass(frozen=True)
class Field:
    label: str
    source: Union[str, Tuple[str, ...]] = ()


@dataclass(frozen=True)
class Section:
    key: str
    label: str
    style: str
    fields: Tuple[Field, ...] = ()
    source: Union[str, Tuple[str, ...]] = ()


@dataclass(frozen=True)
class DocumentTemplate:
    kind: DocumentKind
    title: str
    file_label: str
    sections: Tuple[Section, ...]
    footer: Tuple[str, ...] = ()

    @property
    def section_labels(self) -> Tuple[str, ...]:
        return tuple(s.label for s in self.sections if s.label)


def _text(key: str, label: str, *sources: str) -> Section:
    return Section(key=key, label=label, style=TEXT, source=sources)


# ── Payment methods on the service bill ─────────────────────────────
# (key, label, reference label)

PAYMENT_METHODS: Tuple[Tuple[str, str, str], ...] = (
    ("cash", "Cash Payment", "Amount"),
    ("bank", "Bank Transfer", "Ref"),
    ("card", "Card Payment", "Ref"),
    ("mobile_money", "Mobile Money (M-Pesa)", "Code"),
    ("insurance", "Insurance", "Claim No."),
)


# ── Layouts ──────────────────────────────────────────────────────────

CLINICAL_SUMMARY = DocumentTemplate(
    kind=DocumentKind.CLINICAL_SUMMARY,
    title="CLINICAL SUMMARY",
    file_label="Clinical_Summary",
    sections=(
        Section("patient", "", FIELDS, fields=(
            Field("PT Name(s)", "patient.name_upper"),
            Field("Age", "computed.age"),
            Field("Gender", "patient.gender_upper"),
            Field("Date of Visit", "event.date"),
            Field("OP No", "patient.patient_id"),
        )),
        _text("presenting_complaints", "Presenting Complaints",
              "event.presenting_complaints", "event.chief_complaint"),
        _text("history", "History of Presenting Illness",
              "event.history_of_presenting_illness", "event.history_of_present_illness"),
        _text("impression", "Impression", "event.impression", "event.clinical_findings"),
        _text("investigations", "Investigations", "event.investigations"),
        _text("final_diagnosis", "Final Diagnosis",
              "event.final_diagnosis", "event.provisional_diagnosis"),
        _text("management", "Management", "event.management", "event.treatment_plan"),
        Section("signature", "", SIGNATURE, fields=(
            Field("Doctor's Name", "event.clinician"),
            Field("Signature"),
            Field("Date", "event.date"),
        )),
    ),
)

DISCHARGE_SUMMARY = DocumentTemplate(
    kind=DocumentKind.DISCHARGE_SUMMARY,
    title="DISCHARGE SUMMARY",
    file_label="Discharge_Summary",
    sections=(
        Section("patient", "", FIELDS, fields=(
            Field("PT Name(s)", "patient.name_upper"),
            Field("Age", "computed.age"),
            Field("Gender", "patient.gender_upper"),
            Field("Date of Admission", ("event.date_of_admission", "record.admission_date")),
            Field("Date of Discharge", ("event.date_of_discharge", "event.date")),
            Field("IP No", "patient.patient_id"),
        )),
        _text("mode_of_admission", "Mode of Admission (Voluntary / Involuntary)",
              "event.mode_of_admission"),
        _text("final_diagnosis", "Final Diagnosis", "event.final_diagnosis"),
        _text("other_conditions", "Other Acute or Chronic Conditions", "event.other_conditions"),
        _text("investigations", "Investigations", "event.investigations"),
        _text("management", "Management", "event.management"),
        _text("discharge_drugs", "Discharge Drugs", "event.discharge_drugs"),
        _text("discharge_instructions", "Discharge Instructions", "event.discharge_instructions"),
        _text("follow_up", "Follow-up Appointment(s)", "event.follow_up"),
        Section("signature", "", SIGNATURE, fields=(
            Field("Doctor's Name", "event.clinician"),
            Field("Signature"),
            Field("Date", ("event.date_of_discharge", "event.date")),
            Field("Stamp"),
        )),
    ),
)

REFERRAL_OUT = DocumentTemplate(
    kind=DocumentKind.REFERRAL_OUT,
    title="REFERRAL OUT FORM",
    file_label="Referral_Out",
    sections=(
        Section("date", "", FIELDS, fields=(Field("Date", "event.date"),)),
        Section("patient", "", FIELDS, fields=(
            Field("Patient Name", "patient.name_upper"),
            Field("OP No", "patient.patient_id"),
            Field("Phone Number", "patient.phone"),
            Field("Age", "computed.age"),
            Field("Sex", "patient.gender_upper"),
        )),
        _text("brief_history", "Brief History", "event.brief_history"),
        _text("investigations", "Investigations", "event.investigations"),
        _text("treatment", "Treatment", "event.treatment"),
        _text("diagnosis", "Diagnosis", "event.diagnosis"),
        _text("reason", "Reason for Referral", "event.reason_for_referral"),
        Section("signature", "", SIGNATURE, fields=(
            Field("Referred By", ("event.referred_by", "event.clinician")),
            Field("Signature"),
        )),
        _text("comments", "Additional Comments", "event.additional_comments"),
        Section("referred_to", "", FIELDS, fields=(Field("Referred To", "event.referred_to"),)),
    ),
)

_REPORT_SECTIONS = (
    ("presenting_complaints", "Presenting Complaints", ("event.presenting_complaints", "event.chief_complaint")),
    ("history", "History of Present Illness", ("event.history_of_present_illness",)),
    ("past_medical_history", "Past Medical History", ("event.past_medical_history", "patient.medical_history")),
    ("family_history", "Family History", ("event.family_history",)),
    ("social_history", "Social History", ("event.social_history",)),
    ("review_of_systems", "Review of Systems", ("event.review_of_systems",)),
    ("physical_examination", "Physical Examination", ("event.physical_examination",)),
    ("mental_state_examination", "Mental State Examination", ("event.mental_state_examination",)),
    ("investigations", "Investigations", ("event.investigations",)),
    ("provisional_diagnosis", "Provisional Diagnosis", ("event.provisional_diagnosis",)),
    ("differential_diagnosis", "Differential Diagnosis", ("event.differential_diagnosis",)),
    ("treatment_plan", "Treatment Plan", ("event.treatment_plan",)),
    ("prognosis", "Prognosis", ("event.prognosis",)),
)

MEDICAL_REPORT = DocumentTemplate(
    kind=DocumentKind.MEDICAL_REPORT,
    title="MEDICAL REPORT",
    file_label="Medical_Report",
    sections=(
        Section("patient", "", FIELDS, fields=(
            Field("Patient Name", "patient.name_upper"),
            Field("Age", "computed.age_years"),
            Field("Gender", "patient.gender_upper"),
            Field("Admission Date", ("record.admission_date", "event.date")),
            Field("IP No", "patient.patient_id"),
            Field("Phone", "patient.phone"),
            Field("Address", "patient.address"),
            Field("Next of Kin", "patient.emergency_contact_name"),
        )),
    ) + tuple(
        _text(key, f"{n}. {label}", *sources)
        for n, (key, label, sources) in enumerate(_REPORT_SECTIONS, start=1)
    ) + (
        Section("signature", "", SIGNATURE, fields=(
            Field("Prepared By", ("event.prepared_by", "event.clinician")),
            Field("Approved By", "event.approved_by"),
        )),
    ),
)

PRESCRIPTION = DocumentTemplate(
    kind=DocumentKind.PRESCRIPTION,
    title="PRESCRIPTION",
    file_label="Prescription",
    sections=(
        Section("patient", "", FIELDS, fields=(
            Field("Patient Name", "patient.name_upper"),
            Field("Patient ID", "patient.patient_id"),
            Field("Age", "computed.age_years"),
            Field("Gender", "patient.gender"),
            Field("Date", ("event.date", "computed.generated_date")),
            Field("Doctor", "event.clinician"),
            Field("Phone", "patient.phone"),
            Field("Weight", "event.weight"),
        )),
        Section("medications", "Medications", MEDICATIONS),
        _text("special_instructions", "Special Instructions", "event.special_instructions"),
        _text("allergies", "Allergies", "patient.allergies"),
        _text("follow_up", "Follow-up Appointment", "event.follow_up"),
        Section("physician", "Prescribing Physician", SIGNATURE, fields=(
            Field("Name", "event.clinician"),
            Field("Registration No.", "event.registration_number"),
            Field("Doctor's Signature"),
        )),
        Section("pharmacy", "For Pharmacy Use Only", SIGNATURE, fields=(
            Field("Dispensed By", "event.dispensed_by"),
            Field("Date", "event.date_dispensed"),
            Field("Pharmacy Stamp & Signature"),
        )),
    ),
    footer=(
        f"This prescription is valid for {PRESCRIPTION_VALIDITY_DAYS} days from the date of issue",
        f"{INSTITUTION_NAME.title()} - Professional Mental Health Care",
    ),
)

DETAILED_SERVICE_BILL = DocumentTemplate(
    kind=DocumentKind.DETAILED_SERVICE_BILL,
    title="Patient Detailed Service Bill",
    file_label="Service_Bill",
    sections=(
        Section("details", "", FIELDS, fields=(
            Field("Print Date", "computed.generated_long_date"),
            Field("Patient Name", "patient.name_upper"),
            Field("IP No.", "patient.patient_id"),
            Field("Gender", "patient.gender"),
            Field("Invoice / Claim No.", "record.invoice_number"),
            Field("DOA", ("record.admission_date", "patient.registration_date")),
            Field("Age", "computed.age_ymd"),
        )),
        Section("items", "Services", BILLING),
        Section("totals", "", TOTALS, fields=(
            Field("Page Total", "computed.grand_total"),
            Field("Grand Total", "computed.grand_total"),
        )),
        Section("payment_summary", "Payment Summary", TOTALS, fields=(
            Field("Total Bill Amount", "computed.grand_total"),
            Field("Amount Paid", "computed.amount_paid"),
            Field("Balance Due", "computed.balance_due"),
        )),
        Section("payment_details", "Payment Details", CHECKLIST),
        Section("signature", "", SIGNATURE, fields=(
            Field("Prepared By"),
            Field("Patient / Guardian Signature"),
        )),
    ),
)


TEMPLATES: Dict[str, DocumentTemplate] = {
    t.kind.value: t
    for t in (
        CLINICAL_SUMMARY, DISCHARGE_SUMMARY, REFERRAL_OUT,
        MEDICAL_REPORT, PRESCRIPTION, DETAILED_SERVICE_BILL,
    )
}


def get_template(kind) -> DocumentTemplate:
    """Return the layout for *kind* or raise UnknownDocumentKind."""
    key = getattr(kind, "value", kind)
    try:
        return TEMPLATES[key]
    except (KeyError, TypeError):
        raise UnknownDocumentKind(kind) from None
