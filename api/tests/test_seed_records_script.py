from __future__ import annotations

import subprocess
import sys
from pathlib import Path


SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "seed_records.py"
APPLICANT_ID = "00000000-0000-0000-0000-000000000001"
ADMIN_ID = "00000000-0000-0000-0000-000000000002"


def _run_script(*args: str) -> str:
    completed = subprocess.run(
        [sys.executable, str(SCRIPT_PATH), *args],
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout


def test_seed_script_emits_profiles_postings_and_applications() -> None:
    output = _run_script("--applicant-id", APPLICANT_ID, "--admin-id", ADMIN_ID)

    assert output.startswith("-- Job tracker demo seed")
    assert f"('{APPLICANT_ID}', 'Test User', 'testuser@example.com')" in output
    assert f"('{ADMIN_ID}', 'Admin User', 'admin@example.com')" in output
    assert output.count(f"'{ADMIN_ID}', true)") == 5
    assert output.count(f"'{APPLICANT_ID}', false,") == 5
    assert "'Received offer, negotiating salary'" in output
    assert output.rstrip().endswith("commit;")


def test_seed_script_is_deterministic() -> None:
    first = _run_script("--applicant-id", APPLICANT_ID, "--admin-id", ADMIN_ID)
    second = _run_script("--applicant-id", APPLICANT_ID, "--admin-id", ADMIN_ID)

    assert first == second


def test_seed_script_escapes_quotes_in_emails() -> None:
    output = _run_script(
        "--applicant-id",
        APPLICANT_ID,
        "--admin-id",
        ADMIN_ID,
        "--applicant-email",
        "o'brien@example.com",
    )

    assert "'o''brien@example.com'" in output
