"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

DateLike = Union[date, datetime, str, None]


@dataclass
class Actor:
    """The signed-in user. Role is fixed for the lifetime of a session."""
    id: int
    username: str
    role: str                 # see permissions.Role
    is_active: bool = True
    display_name: str = ""


@dataclass
class PatientRecord:
    patient_id: str           # institution number, e.g. CMH-2024-0001
    first_name: str = ""
    last_name: str = ""
    middle_name: str = ""
    date_of_birth: DateLike = None
    gender: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    emergency_contact_name: str = ""
    emergency_contact_phone: str = ""
    emergency_contact_relationship: str = ""
    allergies: str = ""
    medical_history: str = ""
    registration_date: DateLike = None
    is_active: bool = True
    id: Optional[int] = None  # storage primary key

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p.strip() for p in parts if p and p.strip())


@dataclass
class ClinicalEvent:
    """
    One clinical encounter (consultation, discharge, referral, report).
    ``fields`` holds the entries specific to ``kind``, keyed by the names the
    document layouts bind to (``chief_complaint``, ``final_diagnosis``, ...).
    """
    kind: str
    patient_id: str
    event_date: DateLike = None
    clinician: str = ""
    fields: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None


@dataclass
class PrescriptionItem:
    medication: str
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    quantity: Optional[int] = None
    dosage_form: str = ""
    instructions: str = ""


@dataclass
class BillingLineItem:
    """A billed service. ``total`` is stored, not derived from quantity * unit_price."""
    description: str
    quantity: Union[int, Decimal] = 1
    unit_price: Decimal = Decimal("0")
    total: Decimal = Decimal("0")
    created_at: DateLike = None
    payment_status: str = "pending"   # pending, paid, partial, cancelled
    service_type: str = ""


@dataclass
class DocumentRecord:
    """Everything a document needs; assembled by the caller before rendering."""
    patient: PatientRecord
    event: Optional[ClinicalEvent] = None
    prescriptions: List[PrescriptionItem] = field(default_factory=list)
    line_items: List[BillingLineItem] = field(default_factory=list)
    invoice_number: str = ""
    admission_date: DateLike = None
    payment_references: Dict[str, str] = field(default_factory=dict)


@dataclass
class Document:
    """A finished, self-contained document ready for print or download."""
    kind: str
    title: str
    media_type: str
    content: str
    filename: str
    generated_on: datetime
