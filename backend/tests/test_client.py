import pytest

from conftest import ADMIN, DOCTOR, PATIENT
from diagnexus.cli import build_parser, main, render_dashboard, run
from diagnexus.client import ApiClient, ApiError


@pytest.fixture
def api(client):
    return ApiClient(http=client)


def test_login_stores_token(api):
    user = api.login(*PATIENT)
    assert user["role"] == "Patient"
    assert api.token
    assert api.me()["email"] == "john.doe@example.com"
    api.logout()
    with pytest.raises(ApiError) as excinfo:
        api.me()
    assert excinfo.value.status_code == 401


def test_bad_login_raises_with_server_message(api):
    with pytest.raises(ApiError, match="Invalid email or password"):
        api.login("alice@example.com", "wrong")


def test_upload_and_download(api):
    api.login(*PATIENT)
    report = api.upload_report("scan.png", b"\x89PNG fake", "image/png", "Knee scan", comments="left")
    filename, content = api.download_report(report["report_id"])
    assert filename == "Knee_scan.png"
    assert content == b"\x89PNG fake"


def test_role_views(api):
    api.login(*PATIENT)
    api.upload_report("a.pdf", b"%PDF a", "application/pdf", "Blood Test", comments="fasting")
    patient_lines = render_dashboard(api)
    assert patient_lines[0] == "My reports (John Doe)"
    assert any("Blood Test" in line for line in patient_lines)
    assert any("fasting" in line for line in patient_lines)

    api.login(*DOCTOR)
    doctor_lines = render_dashboard(api)
    assert doctor_lines[0] == "Patient reports"
    assert any("John Doe" in line and "Blood Test" in line for line in doctor_lines)
    assert render_dashboard(api, patient_id=1)[1] == "  (no reports)"

    api.login(*ADMIN)
    admin_lines = render_dashboard(api)
    assert admin_lines[0] == "Users (3 active)"
    assert any("smith@hospital.com" in line for line in admin_lines)
    assert "Patient reports" in admin_lines


def test_cli_upload_and_download(api, tmp_path, capsys):
    source = tmp_path / "xray.pdf"
    source.write_bytes(b"%PDF xray")
    out_dir = tmp_path / "out"
    out_dir.mkdir()
    parser = build_parser()

    args = parser.parse_args(["--email", PATIENT[0], "--password", PATIENT[1],
                              "upload", str(source), "--name", "Chest X-ray"])
    assert run(args, api) == 0
    assert "Uploaded report #1" in capsys.readouterr().out

    args = parser.parse_args(["--email", DOCTOR[0], "--password", DOCTOR[1],
                              "download", "1", "--out", str(out_dir)])
    assert run(args, api) == 0
    assert (out_dir / "Chest_X-ray.pdf").read_bytes() == b"%PDF xray"


def test_cli_requires_credentials(monkeypatch, capsys):
    monkeypatch.delenv("DIAGNEXUS_EMAIL", raising=False)
    monkeypatch.delenv("DIAGNEXUS_PASSWORD", raising=False)
    assert main(["dashboard"]) == 2
    assert "Email and password are required" in capsys.readouterr().err
