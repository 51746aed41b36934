"""
Command-line front end: logs in and renders the view that matches the
account's role.

    diagnexus --email alice@example.com --password admin123 dashboard
    diagnexus ... upload scan.pdf --name "Chest X-ray" [--user-id 3]
    diagnexus ... download 12 [--out ./downloads]
"""

import argparse
import mimetypes
import os
import sys
from pathlib import Path
from typing import Optional

from diagnexus.client import ApiClient, ApiError


def _size(n: Optional[int]) -> str:
    if not n:
        return "-"
    if n >= 1024 * 1024:
        return f"{n / (1024 * 1024):.1f} MB"
    return f"{n / 1024:.1f} KB"


def _report_rows(reports: list[dict], with_patient: bool) -> list[str]:
    if not reports:
        return ["  (no reports)"]
    rows = []
    for r in reports:
        created = (r.get("created_at") or "")[:10]
        patient = f"{r.get('patient_name') or r['user_id']:<18} " if with_patient else ""
        rows.append(f"  #{r['report_id']:<5} {patient}{r['name']:<28} {_size(r.get('file_size')):>9}  {created}")
        if r.get("comments"):
            rows.append(f"         {r['comments']}")
    return rows


def patient_view(client: ApiClient) -> list[str]:
    lines = [f"My reports ({client.user['name']})"]
    lines += _report_rows(client.list_reports(), with_patient=False)
    return lines


def doctor_view(client: ApiClient, patient_id: Optional[int] = None) -> list[str]:
    title = "Patient reports" if patient_id is None else f"Reports for patient {patient_id}"
    lines = [title]
    lines += _report_rows(client.list_reports(user_id=patient_id), with_patient=True)
    return lines


def admin_view(client: ApiClient) -> list[str]:
    users = client.list_users()
    lines = [f"Users ({len(users)} active)"]
    for u in users:
        lines.append(f"  #{u['user_id']:<5} {u['role']:<8} {u['name']:<24} {u['email']}")
    lines.append("")
    lines += doctor_view(client)
    return lines


def render_dashboard(client: ApiClient, patient_id: Optional[int] = None) -> list[str]:
    role = client.user["role"]
    if role == "Admin":
        return admin_view(client)
    if role == "Doctor":
        return doctor_view(client, patient_id)
    return patient_view(client)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="diagnexus", description="DiagNexus medical report client")
    parser.add_argument("--url", default=os.getenv("DIAGNEXUS_URL", "http://localhost:8000"))
    parser.add_argument("--email", default=os.getenv("DIAGNEXUS_EMAIL"))
    parser.add_argument("--password", default=os.getenv("DIAGNEXUS_PASSWORD"))
    sub = parser.add_subparsers(dest="command", required=True)

    dash = sub.add_parser("dashboard", help="Show the view for your role")
    dash.add_argument("--patient-id", type=int, help="Doctor/Admin: only this patient's reports")

    up = sub.add_parser("upload", help="Upload a PDF, JPEG or PNG report")
    up.add_argument("path")
    up.add_argument("--name", required=True)
    up.add_argument("--comments")
    up.add_argument("--user-id", type=int, help="Owner (defaults to yourself)")

    down = sub.add_parser("download", help="Download a report")
    down.add_argument("report_id", type=int)
    down.add_argument("--out", default=".")
    return parser


def run(args: argparse.Namespace, client: ApiClient) -> int:
    client.login(args.email, args.password)

    if args.command == "dashboard":
        print("\n".join(render_dashboard(client, args.patient_id)))
    elif args.command == "upload":
        path = Path(args.path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        report = client.upload_report(path.name, path.read_bytes(), content_type, args.name,
                                      comments=args.comments, user_id=args.user_id)
        print(f"Uploaded report #{report['report_id']} ({_size(report['file_size'])})")
    elif args.command == "download":
        filename, content = client.download_report(args.report_id)
        target = Path(args.out) / filename
        target.write_bytes(content)
        print(f"Saved {target} ({_size(len(content))})")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if not args.email or not args.password:
        print("Email and password are required (--email/--password or DIAGNEXUS_EMAIL/DIAGNEXUS_PASSWORD)",
              file=sys.stderr)
        return 2
    try:
        return run(args, ApiClient(args.url))
    except ApiError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
