#!/usr/bin/env python3
"""Emit deterministic SQL that seeds demo postings and applications."""

from __future__ import annotations

import argparse
import uuid

SEED_NAMESPACE = uuid.UUID("7d1f6a52-3c0e-4a55-9a43-2a8f0c6f1b9e")

POSTINGS = [
    ("Google", "Frontend Developer", "Open", "2023-05-01", "Build product surfaces in React"),
    ("Microsoft", "Backend Developer", "Open", "2023-04-28", "Own services behind the Graph API"),
    ("Amazon", "Full Stack Developer", "Open", "2023-04-10", "Ship features end to end"),
    ("Facebook", "React Developer", "Closed", "2023-03-30", "Design system team"),
    ("Netflix", "Node.js Developer", "Open", "2023-05-18", "Streaming platform tooling"),
]

APPLICATIONS = [
    ("Google", "Applied", "2023-05-15", "Applied through company website"),
    ("Microsoft", "Interview", "2023-05-10", "First interview scheduled for next week"),
    ("Amazon", "Offer", "2023-04-20", "Received offer, negotiating salary"),
    ("Facebook", "Rejected", "2023-04-05", "Rejected after technical interview"),
    ("Netflix", "Applied", "2023-05-20", "Applied through referral"),
]


def _quote_sql(value: str | None) -> str:
    if value is None:
        return "null"
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def _seed_id(*parts: str) -> str:
    return str(uuid.uuid5(SEED_NAMESPACE, "/".join(parts)))


def render_sql(*, applicant_id: str, admin_id: str, applicant_email: str, admin_email: str) -> str:
    lines = [
        "-- Job tracker demo seed",
        "-- Run against a database initialised with db/schema.sql.",
        "",
        "begin;",
        "",
        "insert into owner_profiles (id, name, email)",
        "values",
        f"  ({_quote_sql(applicant_id)}, 'Test User', {_quote_sql(applicant_email)}),",
        f"  ({_quote_sql(admin_id)}, 'Admin User', {_quote_sql(admin_email)})",
        "on conflict (id) do update set name = excluded.name, email = excluded.email;",
        "",
    ]

    posting_ids: dict[str, str] = {}
    for company, role, status, posted, description in POSTINGS:
        posting_id = _seed_id("posting", company, role)
        posting_ids[company] = posting_id
        lines.append(
            "insert into job_records "
            "(id, company, role, status, posted_or_applied_date, notes, owner_id, is_posting) "
            f"values ({_quote_sql(posting_id)}::uuid, {_quote_sql(company)}, {_quote_sql(role)}, "
            f"{_quote_sql(status)}, {_quote_sql(posted)}::timestamptz, {_quote_sql(description)}, "
            f"{_quote_sql(admin_id)}, true) on conflict (id) do nothing;"
        )

    lines.append("")
    roles = {company: role for company, role, *_ in POSTINGS}
    for company, status, applied, notes in APPLICATIONS:
        application_id = _seed_id("application", applicant_id, company)
        lines.append(
            "insert into job_records "
            "(id, company, role, status, posted_or_applied_date, notes, owner_id, is_posting, original_posting_id) "
            f"values ({_quote_sql(application_id)}::uuid, {_quote_sql(company)}, {_quote_sql(roles[company])}, "
            f"{_quote_sql(status)}, {_quote_sql(applied)}::timestamptz, {_quote_sql(notes)}, "
            f"{_quote_sql(applicant_id)}, false, {_quote_sql(posting_ids[company])}::uuid) "
            "on conflict do nothing;"
        )

    lines.extend(["", "commit;", ""])
    return "\n".join(lines)


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL that seeds demo job records.")
    parser.add_argument("--applicant-id", required=True, help="Auth user id of the demo applicant")
    parser.add_argument("--admin-id", required=True, help="Auth user id of the demo admin")
    parser.add_argument("--applicant-email", default="testuser@example.com")
    parser.add_argument("--admin-email", default="admin@example.com")
    args = parser.parse_args()

    print(
        render_sql(
            applicant_id=args.applicant_id,
            admin_id=args.admin_id,
            applicant_email=args.applicant_email,
            admin_email=args.admin_email,
        )
    )


if __name__ == "__main__":
    main()
