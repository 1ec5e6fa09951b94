"""
Document rendering – binds a DocumentRecord into a fixed layout and emits it.

Rendering happens in two passes. ``bind`` resolves every slot of the layout
against the record and produces a backend-neutral BoundDocument. An output
backend (print HTML or plain text) then turns that into the final content.
Given the same record and the same ``generated_on`` the output is identical
byte for byte.
"""

import os
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import pandas as pd
from jinja2 import Environment, FileSystemLoader, select_autoescape

from clinicore.billing import aggregate_billing, payment_summary
from clinicore.config import (
    INSTITUTION_ADDRESS_LINES,
    INSTITUTION_EMAIL,
    INSTITUTION_LOGO_URL,
    INSTITUTION_NAME,
    INSTITUTION_PHONE,
    INSTITUTION_TAGLINE,
    MISSING_FIELD_PLACEHOLDER,
)
from clinicore.formatting import (
    compute_age,
    compute_age_parts,
    format_amount,
    format_currency,
    format_date,
    format_date_time,
    format_iso_date,
    format_long_date,
    to_date,
    to_decimal,
)
from clinicore.layouts import (
    BILLING,
    CHECKLIST,
    MEDICATIONS,
    PAYMENT_METHODS,
    TEXT,
    DocumentTemplate,
    get_template,
)
from clinicore.models import Document, DocumentRecord

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")

_env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


# ── Bound document ───────────────────────────────────────────────────

@dataclass
class BoundSection:
    key: str
    label: str
    style: str
    value: str = ""
    fields: List[Tuple[str, str]] = field(default_factory=list)
    items: List[Dict[str, str]] = field(default_factory=list)
    groups: List[Tuple[str, List[Dict[str, str]]]] = field(default_factory=list)


@dataclass
class BoundDocument:
    kind: str
    title: str
    file_label: str
    patient_id: str
    generated_on: datetime
    header: Dict[str, Any]
    sections: List[BoundSection]
    footer: List[str]


INSTITUTION_HEADER = {
    "name": INSTITUTION_NAME,
    "tagline": INSTITUTION_TAGLINE,
    "address_lines": list(INSTITUTION_ADDRESS_LINES),
    "phone": INSTITUTION_PHONE,
    "email": INSTITUTION_EMAIL,
    "logo_url": INSTITUTION_LOGO_URL,
}


# ── Binding helpers ──────────────────────────────────────────────────

def _is_date_key(key: str) -> bool:
    return key.startswith("date") or key.endswith("_date")


def _display(value) -> str:
    """Render one bound value as printable text; missing values become the placeholder."""
    if value is None:
        return MISSING_FIELD_PLACEHOLDER
    if isinstance(value, (list, tuple)):
        return "\n".join(s for s in (_display(v) for v in value) if s)
    if hasattr(value, "year") and hasattr(value, "month"):
        return format_date(value)
    return str(value).strip()


def _date_text(value) -> str:
    # Dates print in the fixed format; text that is not a date prints as given
    return format_date(value) or _display(value)


def _patient_context(record: DocumentRecord) -> Dict[str, Any]:
    patient = record.patient
    if patient is None:
        return {}
    ctx = asdict(patient)
    ctx["name_upper"] = patient.full_name.upper()
    ctx["gender_upper"] = (patient.gender or "").upper()
    ctx["registration_date"] = _date_text(patient.registration_date)
    ctx["date_of_birth"] = _date_text(patient.date_of_birth)
    return ctx


def _event_context(record: DocumentRecord) -> Dict[str, Any]:
    event = record.event
    if event is None:
        return {}
    ctx = {}
    for key, value in (event.fields or {}).items():
        ctx[key] = _date_text(value) if _is_date_key(key) else value
    ctx["date"] = _date_text(event.event_date)
    ctx["clinician"] = event.clinician
    return ctx


def _computed_context(record: DocumentRecord, generated_on: datetime) -> Dict[str, Any]:
    ctx: Dict[str, Any] = {
        "generated_date": format_date(generated_on),
        "generated_long_date": format_long_date(generated_on),
        "generated_at": format_date_time(generated_on),
    }

    dob = to_date(record.patient.date_of_birth) if record.patient else None
    if dob is not None:
        years, months, days = compute_age_parts(dob, generated_on)
        ctx["age"] = str(compute_age(dob, generated_on))
        ctx["age_years"] = f"{years} Years"
        ctx["age_ymd"] = f"{years} Y {months} M {days} Days"

    summary = payment_summary(record.line_items)
    ctx["amount_paid"] = format_currency(summary["paid"])
    ctx["balance_due"] = format_currency(summary["balance"])
    ctx["grand_total"] = format_currency(aggregate_billing(record.line_items).grand_total)
    return ctx


def _resolve(context: Dict[str, Dict[str, Any]], source) -> str:
    """First non-empty value among the dotted paths in *source*."""
    paths = (source,) if isinstance(source, str) else tuple(source or ())
    for path in paths:
        scope, _, name = path.partition(".")
        text = _display(context.get(scope, {}).get(name))
        if text:
            return text
    return MISSING_FIELD_PLACEHOLDER


def _medication_items(record: DocumentRecord) -> List[Dict[str, str]]:
    items = []
    for n, p in enumerate(record.prescriptions, start=1):
        quantity = _display(p.quantity)
        if quantity and p.dosage_form:
            quantity = f"{quantity} {p.dosage_form}"
        items.append({
            "number": str(n),
            "medication": _display(p.medication),
            "dosage": _display(p.dosage),
            "frequency": _display(p.frequency),
            "duration": _display(p.duration),
            "quantity": quantity,
            "instructions": _display(p.instructions),
        })
    return items


def _billing_groups(record: DocumentRecord) -> List[Tuple[str, List[Dict[str, str]]]]:
    groups = []
    for day, items in aggregate_billing(record.line_items).by_date.items():
        rows = []
        for n, item in enumerate(items, start=1):
            quantity = to_decimal(item.quantity)
            rows.append({
                "number": f"{n}.",
                "description": _display(item.description).upper(),
                "quantity": f"{quantity:.2f}" if quantity is not None else MISSING_FIELD_PLACEHOLDER,
                "unit_price": format_amount(item.unit_price),
                "total": format_amount(item.total),
            })
        groups.append((format_date(day), rows))
    return groups


def _checklist_items(record: DocumentRecord) -> List[Dict[str, str]]:
    refs = record.payment_references or {}
    items = []
    for key, label, ref_label in PAYMENT_METHODS:
        reference = _display(refs.get(key))
        items.append({
            "key": key,
            "label": label,
            "reference_label": ref_label,
            "reference": reference,
            "checked": "x" if reference else "",
        })
    return items


def bind(template: DocumentTemplate, record: DocumentRecord, generated_on: datetime) -> BoundDocument:
    """Resolve every section of *template* against *record*."""
    context = {
        "patient": _patient_context(record),
        "event": _event_context(record),
        "record": {
            "invoice_number": record.invoice_number,
            "admission_date": _date_text(record.admission_date),
        },
        "computed": _computed_context(record, generated_on),
    }

    sections = []
    for section in template.sections:
        bound = BoundSection(key=section.key, label=section.label, style=section.style)
        if section.fields:
            bound.fields = [(f.label, _resolve(context, f.source)) for f in section.fields]
        if section.source:
            bound.value = _resolve(context, section.source)
        if section.style == MEDICATIONS:
            bound.items = _medication_items(record)
        elif section.style == BILLING:
            bound.groups = _billing_groups(record)
        elif section.style == CHECKLIST:
            bound.items = _checklist_items(record)
        sections.append(bound)

    patient_id = record.patient.patient_id if record.patient else ""
    return BoundDocument(
        kind=template.kind.value,
        title=template.title,
        file_label=template.file_label,
        patient_id=patient_id or MISSING_FIELD_PLACEHOLDER,
        generated_on=generated_on,
        header=INSTITUTION_HEADER,
        sections=sections,
        footer=list(template.footer) + [f"Generated on {context['computed']['generated_at']}"],
    )


# ── Output backends ──────────────────────────────────────────────────

def render_html(doc: BoundDocument) -> str:
    return _env.get_template("document.html").render(doc=doc)


def _text_block(label: str, value: str) -> List[str]:
    lines = [f"{label}:"]
    lines.extend(f"    {line}" for line in (value.splitlines() or [""]))
    return lines


def render_text(doc: BoundDocument) -> str:
    h = doc.header
    lines = [h["name"], h["tagline"], *h["address_lines"],
             f"Tel: {h['phone']}  Email: {h['email']}", "", doc.title, "=" * len(doc.title), ""]

    for s in doc.sections:
        if s.style == TEXT:
            lines.extend(_text_block(s.label, s.value))
            lines.append("")
            continue
        if s.label:
            lines.append(f"{s.label}:")

        if s.style == MEDICATIONS:
            for item in s.items:
                lines.append(f"  {item['number']}. {item['medication']}")
                for key in ("dosage", "frequency", "duration", "quantity", "instructions"):
                    lines.append(f"       {key.title()}: {item[key]}")
        elif s.style == BILLING:
            for day, rows in s.groups:
                lines.append(day or "(undated)")
                frame = pd.DataFrame(rows, columns=["number", "description", "quantity", "unit_price", "total"])
                frame.columns = ["#", "Item Description", "Quantity", "Unit Price", "Total"]
                lines.append(frame.to_markdown(index=False))
                lines.append("")
        elif s.style == CHECKLIST:
            for item in s.items:
                lines.append(f"  [{item['checked'] or ' '}] {item['label']}  "
                             f"{item['reference_label']}: {item['reference'] or '________'}")
        else:
            for label, value in s.fields:
                lines.append(f"  {label}: {value or '________'}")
        lines.append("")

    lines.extend(doc.footer)
    return "\n".join(lines) + "\n"


BACKENDS: Dict[str, Tuple[Callable[[BoundDocument], str], str, str]] = {
    "html": (render_html, "text/html", "html"),
    "text": (render_text, "text/plain", "txt"),
}


# ── Public API ───────────────────────────────────────────────────────

def export_filename(kind, patient_id, on_date, extension: Optional[str] = None) -> str:
    """``{FileLabel}_{patientId}_{ISODate}``, e.g. ``Clinical_Summary_CMH-0001_2024-06-15``."""
    template = get_template(kind)
    pid = re.sub(r"[^A-Za-z0-9_.-]+", "-", str(patient_id or "")).strip("-")
    name = f"{template.file_label}_{pid}_{format_iso_date(on_date)}"
    return f"{name}.{extension}" if extension else name


def render(kind, record: DocumentRecord, generated_on: Optional[datetime] = None,
           output: str = "html") -> Document:
    """
    Render *record* as the document *kind*.

    The kind is validated before anything else; an unknown kind raises
    UnknownDocumentKind. Missing record fields print as blanks.
    """
    template = get_template(kind)
    if output not in BACKENDS:
        raise ValueError(f"Unknown output format: {output!r}")
    backend, media_type, extension = BACKENDS[output]

    if generated_on is None:
        generated_on = datetime.now()

    bound = bind(template, record, generated_on)
    content = backend(bound)
    return Document(
        kind=template.kind.value,
        title=template.title,
        media_type=media_type,
        content=content,
        filename=export_filename(template.kind, bound.patient_id, generated_on, extension),
        generated_on=generated_on,
    )
