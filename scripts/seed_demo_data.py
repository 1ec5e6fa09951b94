#!/usr/bin/env python3
"""
Seed a development database with fake users, patients, clinical events,
prescriptions and bills so every document kind has something to print.

Usage: DB_URI=... python -m scripts.seed_demo_data
"""

import json
import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy import MetaData, Table, create_engine, select

from clinicore.config import get_env
from clinicore.layouts import TEXT, DocumentKind, get_template
from clinicore.permissions import Role
from scripts.generate_keys import generate_api_key

# --------------------------------------------------------------------
# CONFIG
# --------------------------------------------------------------------
NUM_PATIENTS = 40

# how many rows for each child table (per patient)
PER_PATIENT = {
    "clinical-summary": (1, 3),           # min, max per patient
    "discharge-summary": (0, 1),
    "referral-out": (0, 1),
    "medical-report": (0, 1),
    "prescription": (0, 2),
    "billing": (1, 6),
}

MEDICATIONS = [
    ("Fluoxetine 20mg", "capsules"),
    ("Sertraline 50mg", "tablets"),
    ("Risperidone 1mg", "tablets"),
    ("Methylphenidate 10mg", "tablets"),
    ("Melatonin 3mg", "tablets"),
    ("Aripiprazole oral solution", "ml"),
]

SERVICES = [
    ("Consultation", "consultation", 1500),
    ("Psychotherapy session", "therapy", 3000),
    ("Full haemogram", "lab", 1200),
    ("Urea, electrolytes and creatinine", "lab", 1800),
    ("Pharmacy dispensing", "pharmacy", 300),
    ("Ward bed charges", "inpatient", 4500),
]

# --------------------------------------------------------------------
# SETUP
# --------------------------------------------------------------------
fake = Faker()
random.seed(42)
Faker.seed(42)


# --------------------------------------------------------------------
# HELPERS
# --------------------------------------------------------------------
def random_bool(p_true=0.5):
    return random.random() < p_true


def random_datetime_within(days_back=365):
    now = datetime.now()
    delta = timedelta(days=random.randint(0, days_back), seconds=random.randint(0, 86400))
    return now - delta


def per_patient_count(table_name):
    lo, hi = PER_PATIENT.get(table_name, (0, 0))
    if hi <= 0:
        return 0
    return random.randint(lo, hi)


def clinician_name():
    return f"Dr. {fake.last_name()}"


# --------------------------------------------------------------------
# ROW BUILDERS
# --------------------------------------------------------------------
def build_users():
    """One active user per role; the access key is printed so you can log in."""
    rows = []
    for role in Role:
        rows.append(
            {
                "username": f"{role.value}1",
                "display_name": fake.name(),
                "role": role.value,
                "api_key": generate_api_key(),
                "is_active": True,
                "permissions_overridden": False,
            }
        )
    return rows


def build_patients(n=NUM_PATIENTS, year=None):
    year = year or datetime.now().year
    rows = []
    for i in range(1, n + 1):
        gender = random.choice(["Male", "Female"])
        first = fake.first_name_male() if gender == "Male" else fake.first_name_female()
        rows.append(
            {
                "patient_id": f"CMH-{year}-{i:04d}",
                "first_name": first,
                "middle_name": fake.first_name() if random_bool(0.3) else None,
                "last_name": fake.last_name(),
                "date_of_birth": fake.date_of_birth(minimum_age=4, maximum_age=17),
                "gender": gender,
                "phone": fake.phone_number(),
                "email": fake.email() if random_bool(0.6) else None,
                "address": fake.street_address(),
                "emergency_contact_name": fake.name(),
                "emergency_contact_phone": fake.phone_number(),
                "emergency_contact_relationship": random.choice(["Mother", "Father", "Guardian"]),
                "allergies": random.choice([None, "Penicillin", "Sulfa drugs", "Peanuts"]),
                "medical_history": fake.text(max_nb_chars=120),
                "registration_date": random_datetime_within(720).date(),
                "is_active": random_bool(0.95),
            }
        )
    return rows


def build_event_details(kind):
    """
    Fill every free-text box the layout for *kind* prints, plus the
    kind-specific fields that are not text boxes.
    """
    details = {}
    for section in get_template(kind).sections:
        if section.style != TEXT:
            continue
        first_source = section.source[0]
        scope, _, key = first_source.partition(".")
        if scope == "event":
            details[key] = fake.text(max_nb_chars=160)

    if kind == DocumentKind.DISCHARGE_SUMMARY.value:
        details["date_of_admission"] = random_datetime_within(30).date().isoformat()
        details["mode_of_admission"] = random.choice(["Voluntary", "Involuntary"])
    elif kind == DocumentKind.REFERRAL_OUT.value:
        details["referred_to"] = f"{fake.company()} Hospital"
    elif kind == DocumentKind.MEDICAL_REPORT.value:
        details["approved_by"] = clinician_name()
    elif kind == DocumentKind.PRESCRIPTION.value:
        details["weight"] = f"{random.randint(15, 70)} kg"
        details["registration_number"] = fake.bothify(text="KMPDC-#####")
    return details


def build_clinical_events(patient_pks):
    rows = []
    for ppk in patient_pks:
        for kind in DocumentKind:
            if kind == DocumentKind.DETAILED_SERVICE_BILL:
                continue
            for _ in range(per_patient_count(kind.value)):
                rows.append(
                    {
                        "patient_id": ppk,
                        "kind": kind.value,
                        "event_date": random_datetime_within(365),
                        "clinician": clinician_name(),
                        "details": json.dumps(build_event_details(kind.value)),
                    }
                )
    return rows


def build_prescriptions(prescription_events, medication_ids):
    """*prescription_events* is a list of (event id, patient pk, event date)."""
    rows = []
    for event_id, ppk, issued in prescription_events:
        for medication_id in random.sample(medication_ids, k=min(len(medication_ids), random.randint(1, 3))):
            rows.append(
                {
                    "patient_id": ppk,
                    "event_id": event_id,
                    "medication_id": medication_id,
                    "dosage": random.choice(["5mg", "10mg", "20mg", "1 tab", "5 ml"]),
                    "frequency": random.choice(["Once daily", "Twice daily", "At night"]),
                    "duration": random.choice(["7 days", "14 days", "30 days"]),
                    "quantity": random.choice([7, 14, 30, 60]),
                    "instructions": random.choice([None, "Take after meals", "Avoid alcohol"]),
                    "status": "active",
                    "date_issued": issued,
                }
            )
    return rows


def build_bills(patient_pks):
    rows = []
    for ppk in patient_pks:
        visit = random_datetime_within(180)
        for _ in range(per_patient_count("billing")):
            description, service_type, amount = random.choice(SERVICES)
            discount = random.choice([0, 0, 0, 100, 250])
            rows.append(
                {
                    "patient_id": ppk,
                    "service_description": description,
                    "service_type": service_type,
                    "amount": amount,
                    "total_amount": max(amount - discount, 0),
                    "payment_status": random.choice(["pending", "paid", "partial", "cancelled"]),
                    "created_at": visit + timedelta(hours=random.randint(0, 72)),
                }
            )
    return rows


# --------------------------------------------------------------------
# MAIN
# --------------------------------------------------------------------
def main():
    engine = create_engine(get_env("DB_URI"))
    metadata = MetaData()
    users = Table("users", metadata, autoload_with=engine)
    patients = Table("patients", metadata, autoload_with=engine)
    medications = Table("medications", metadata, autoload_with=engine)
    clinical_events = Table("clinical_events", metadata, autoload_with=engine)
    prescriptions = Table("prescriptions", metadata, autoload_with=engine)
    billing = Table("billing", metadata, autoload_with=engine)

    with engine.begin() as conn:
        print("Seeding users...")
        user_rows = build_users()
        conn.execute(users.insert(), user_rows)

        print("Seeding medications...")
        conn.execute(
            medications.insert(),
            [{"name": name, "dosage_form": form} for name, form in MEDICATIONS],
        )
        medication_ids = conn.execute(select(medications.c.id)).scalars().all()

        print("Seeding patients...")
        conn.execute(patients.insert(), build_patients())
        patient_pks = conn.execute(select(patients.c.id)).scalars().all()

        print("Seeding clinical events...")
        conn.execute(clinical_events.insert(), build_clinical_events(patient_pks))
        rx_events = conn.execute(
            select(clinical_events.c.id, clinical_events.c.patient_id, clinical_events.c.event_date)
            .where(clinical_events.c.kind == DocumentKind.PRESCRIPTION.value)
        ).all()

        print("Seeding prescriptions and bills...")
        rx_rows = build_prescriptions([tuple(r) for r in rx_events], medication_ids)
        if rx_rows:
            conn.execute(prescriptions.insert(), rx_rows)
        conn.execute(billing.insert(), build_bills(patient_pks))

        print("Done!")

    print("\nAccess keys:")
    for row in user_rows:
        print(f"  {row['role']:<13} {row['api_key']}")


if __name__ == "__main__":
    main()
