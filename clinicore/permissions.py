"""
The canonical role → capability and role → module tables.

Every gate in the application reads from here; nothing else defines role lists.
The tables are built once at import time and are never mutated. Per-user
overrides live in storage and are applied by ``rbac.apply_overrides``.
"""

from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple


class Role(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"
    PHARMACIST = "pharmacist"
    CASHIER = "cashier"
    RECEPTIONIST = "receptionist"
    THERAPIST = "therapist"
    STAFF = "staff"


def parse_role(value) -> Optional[Role]:
    """Return the Role for *value* (exact match), or None when it is not a known role."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value)
    except ValueError:
        return None


ROLE_LABELS: Dict[Role, str] = {
    Role.ADMIN: "Administrator",
    Role.DOCTOR: "Doctor",
    Role.NURSE: "Nurse",
    Role.PHARMACIST: "Pharmacist",
    Role.CASHIER: "Cashier",
    Role.RECEPTIONIST: "Receptionist",
    Role.THERAPIST: "Therapist",
    Role.STAFF: "Staff",
}


# ── Capabilities ─────────────────────────────────────────────────────
# (category key, category label, ((capability key, label), ...))

CAPABILITY_CATALOG: Tuple[Tuple[str, str, Tuple[Tuple[str, str], ...]], ...] = (
    ("patient_management", "Patient Management", (
        ("patient_register", "Register New Patients"),
        ("patient_view", "View Patient Records"),
        ("patient_edit", "Edit Patient Information"),
        ("patient_delete", "Delete Patient Records"),
    )),
    ("consultation", "Consultation & Treatment", (
        ("consultation_create", "Create Consultations"),
        ("consultation_view", "View Consultations"),
        ("prescription_create", "Create Prescriptions"),
        ("prescription_approve", "Approve Prescriptions"),
    )),
    ("pharmacy", "Pharmacy Management", (
        ("pharmacy_view", "View Pharmacy"),
        ("pharmacy_manage", "Manage Inventory"),
        ("prescription_dispense", "Dispense Medications"),
        ("pharmacy_reports", "Pharmacy Reports"),
    )),
    ("financial", "Financial Management", (
        ("billing_create", "Create Bills"),
        ("billing_view", "View Billing Records"),
        ("payment_process", "Process Payments"),
        ("financial_reports", "Financial Reports"),
    )),
    ("administration", "System Administration", (
        ("user_create", "Create Users"),
        ("user_manage", "Manage Users"),
        ("system_settings", "System Settings"),
        ("audit_logs", "View Audit Logs"),
    )),
)

ALL_CAPABILITIES: FrozenSet[str] = frozenset(
    key for _, _, caps in CAPABILITY_CATALOG for key, _ in caps
)

ROLE_CAPABILITIES: Dict[Role, FrozenSet[str]] = {
    Role.ADMIN: ALL_CAPABILITIES,
    Role.DOCTOR: frozenset({
        "patient_view", "patient_edit", "consultation_create", "consultation_view",
        "prescription_create", "pharmacy_view",
    }),
    Role.NURSE: frozenset({
        "patient_view", "patient_edit", "consultation_view", "pharmacy_view",
    }),
    Role.PHARMACIST: frozenset({
        "patient_view", "pharmacy_view", "pharmacy_manage", "prescription_approve",
        "prescription_dispense", "pharmacy_reports",
    }),
    Role.CASHIER: frozenset({
        "patient_view", "billing_create", "billing_view", "payment_process",
    }),
    Role.RECEPTIONIST: frozenset({
        "patient_register", "patient_view", "patient_edit",
    }),
    Role.THERAPIST: frozenset({
        "patient_view", "patient_edit", "consultation_create", "consultation_view",
    }),
    Role.STAFF: frozenset({
        "patient_view", "billing_view",
    }),
}


# ── Modules (navigation entries) ─────────────────────────────────────

MODULES: Tuple[str, ...] = (
    "dashboard", "patient-registration", "appointments", "outpatient", "inpatient",
    "laboratory", "pharmacy", "radiology", "therapy", "billing", "insurance",
    "reports", "analytics", "administration",
)

ROLE_MODULES: Dict[Role, FrozenSet[str]] = {
    Role.ADMIN: frozenset(MODULES),
    Role.DOCTOR: frozenset({
        "dashboard", "patient-registration", "appointments", "outpatient", "inpatient",
        "laboratory", "pharmacy", "radiology", "reports",
    }),
    Role.NURSE: frozenset({
        "dashboard", "patient-registration", "appointments", "outpatient", "inpatient",
        "laboratory", "pharmacy",
    }),
    Role.PHARMACIST: frozenset({"dashboard", "pharmacy", "reports"}),
    Role.CASHIER: frozenset({"dashboard", "billing", "insurance"}),
    Role.RECEPTIONIST: frozenset({"dashboard", "patient-registration", "appointments"}),
    Role.THERAPIST: frozenset({"dashboard", "appointments", "outpatient", "therapy"}),
    Role.STAFF: frozenset({
        "dashboard", "patient-registration", "appointments", "billing", "insurance",
    }),
}


# ── Documents ────────────────────────────────────────────────────────
# Holding any one of the listed capabilities is enough to print the document.

DOCUMENT_CAPABILITIES: Dict[str, FrozenSet[str]] = {
    "clinical-summary": frozenset({"consultation_view"}),
    "discharge-summary": frozenset({"consultation_view"}),
    "referral-out": frozenset({"consultation_view"}),
    "medical-report": frozenset({"consultation_view"}),
    "prescription": frozenset({"prescription_create", "pharmacy_view"}),
    "detailed-service-bill": frozenset({"billing_view"}),
}


def capability_catalog() -> List[dict]:
    """The capability list grouped by category, shaped for an admin screen."""
    return [
        {
            "key": category,
            "label": label,
            "permissions": [{"key": k, "label": l} for k, l in caps],
        }
        for category, label, caps in CAPABILITY_CATALOG
    ]
