"""
Interactive CLI for printing clinical and billing documents.
Log in with an access key, then render documents for patients to EXPORT_DIR.
"""

import os

from clinicore.config import EXPORT_DIR
from clinicore.database import init_engine, fetch_document_record
from clinicore.layouts import TEMPLATES
from clinicore.rbac import (
    accessible_modules,
    can_render_document,
    display_role,
    load_actor,
    load_permission_overrides,
)
from clinicore.renderer import render


def write_document(doc, export_dir: str = EXPORT_DIR) -> str:
    """Write a rendered document to *export_dir* and return its path."""
    os.makedirs(export_dir, exist_ok=True)
    path = os.path.join(export_dir, doc.filename)
    with open(path, "w", encoding="utf-8") as fh:
        fh.write(doc.content)
    return path


def main(engine=None):
    print("=== Clinic Core: Document Printing ===\n")

    if engine is None:
        engine = init_engine()

    # ── Login ────────────────────────────────────────────────────────
    try:
        api_key = input("Enter access key (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return

    if not api_key or api_key.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return

    try:
        actor = load_actor(engine, api_key)
        overrides = load_permission_overrides(engine, actor.id)
    except Exception as e:
        print("\n[ERROR] Login failed.")
        print("Details:", e)
        return

    print(f"\n[auth] Logged in as: {actor.display_name} ({display_role(actor.role)})")
    print(f"[auth] Modules: {', '.join(accessible_modules(actor)) or '(none)'}")
    printable = [k for k in TEMPLATES if can_render_document(actor, k, overrides)]
    print(f"[auth] Documents: {', '.join(printable) or '(none)'}")

    # ── REPL ─────────────────────────────────────────────────────────
    while True:
        try:
            kind = input("\nDocument kind (or 'quit'): ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break

        if not kind:
            continue
        if kind.lower() in {"quit", "exit"}:
            print("Goodbye.")
            break
        if kind not in TEMPLATES:
            print(f"[ERROR] Unknown document kind '{kind}'. Choose one of: {', '.join(TEMPLATES)}")
            continue
        if kind not in printable:
            print(f"[DENIED] Your role cannot print {kind}.")
            continue

        try:
            patient_id = input("Patient number: ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break
        if not patient_id:
            continue

        try:
            record = fetch_document_record(engine, kind, patient_id)
            doc = render(kind, record)
            path = write_document(doc)
        except Exception as e:
            print("\n[ERROR] Could not generate document.")
            print("Details:", e)
            continue

        print(f"[render] Saved {doc.title} to {path}")


if __name__ == "__main__":
    main()
