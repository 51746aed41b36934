import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from conftest import principal_for
from diagnexus.auth import hash_password
from diagnexus.exceptions import Forbidden, InvalidInput, NotFound, ServiceUnavailable
from diagnexus.models.report import Report
from diagnexus.models.session_log import SessionLog
from diagnexus.models.user import User
from diagnexus.services.report_service import download_filename, report_service

PDF = b"%PDF-1.4 quarterly bloods"


async def _second_patient(session) -> User:
    jane = User(role="Patient", name="Jane Roe", email="jane@example.com",
                password_hash=hash_password("janepass"), is_active=True)
    session.add(jane)
    await session.commit()
    return jane


async def _upload(session, storage, actor, data=PDF, mime="application/pdf", **kwargs):
    return await report_service.upload(
        actor=actor, data=data, filename="bloods.pdf", display_name="Blood Test",
        mime_type=mime, db=session, storage=storage, **kwargs,
    )


async def test_upload_then_download_roundtrip(session, storage, s3):
    john = await principal_for(session, 3)
    outcome = await _upload(session, storage, john, comment="fasting")
    report = outcome.report
    assert report.user_id == 3
    assert report.updated_by == 3
    assert report.file_size == len(PDF)
    assert report.comments == "fasting"
    assert report.patient_name == "John Doe"
    assert report.file_path in s3.objects

    downloaded = await report_service.download(report.report_id, john, session, storage)
    assert downloaded.data == PDF
    assert downloaded.filename == "Blood_Test.pdf"
    assert downloaded.content_type == "application/pdf"
    assert downloaded.activity_log.ok
    log = await session.scalar(select(SessionLog).where(SessionLog.user_id == 3))
    assert log.token_hash == f"download:{report.report_id}"
    lifetime = log.expires_at.replace(tzinfo=None) - log.created_at.replace(tzinfo=None)
    assert lifetime.total_seconds() > 3600


async def test_rejects_disallowed_type_before_storage(session, storage, s3):
    john = await principal_for(session, 3)
    with pytest.raises(InvalidInput, match="Only PDF and images"):
        await _upload(session, storage, john, data=b"MZ...", mime="application/x-msdownload")
    assert s3.put_calls == 0


async def test_rejects_oversized_file_before_storage(session, storage, s3):
    john = await principal_for(session, 3)
    with pytest.raises(InvalidInput, match="Maximum 10MB"):
        await _upload(session, storage, john, data=b"0" * (15 * 1024 * 1024))
    assert s3.put_calls == 0
    assert await session.scalar(select(func.count()).select_from(Report)) == 0


async def test_requires_file_and_name(session, storage, s3):
    john = await principal_for(session, 3)
    with pytest.raises(InvalidInput, match="File and name are required"):
        await report_service.upload(actor=john, data=PDF, filename="a.pdf", display_name="  ",
                                    mime_type="application/pdf", db=session, storage=storage)
    with pytest.raises(InvalidInput):
        await _upload(session, storage, john, data=b"")
    assert s3.put_calls == 0


async def test_patient_cannot_upload_for_someone_else(session, storage, s3):
    john = await principal_for(session, 3)
    with pytest.raises(Forbidden):
        await _upload(session, storage, john, owner_id=1)
    assert s3.put_calls == 0


async def test_doctor_uploads_on_behalf_of_patient(session, storage):
    doctor = await principal_for(session, 2)
    outcome = await _upload(session, storage, doctor, owner_id=3)
    assert outcome.report.user_id == 3
    assert outcome.report.updated_by == 2
    assert outcome.report.updated_by_name == "Dr. Smith"


async def test_upload_for_unknown_owner(session, storage, s3):
    doctor = await principal_for(session, 2)
    with pytest.raises(NotFound):
        await _upload(session, storage, doctor, owner_id=999)
    assert s3.put_calls == 0


async def test_failed_metadata_insert_removes_object(session, storage, s3, monkeypatch):
    async def broken_insert(db, **fields):
        raise OperationalError("INSERT INTO reports", {}, Exception("connection reset"))

    monkeypatch.setattr(report_service, "_insert_report", broken_insert)
    john = await principal_for(session, 3)
    with pytest.raises(ServiceUnavailable) as excinfo:
        await _upload(session, storage, john)

    assert s3.put_calls == 1
    assert len(s3.deleted) == 1
    assert s3.objects == {}
    assert excinfo.value.details["cleanup"].ok


async def test_failed_cleanup_is_reported_not_raised(session, storage, s3, monkeypatch):
    async def broken_insert(db, **fields):
        raise OperationalError("INSERT INTO reports", {}, Exception("connection reset"))

    async def broken_delete(key):
        raise ServiceUnavailable("Storage delete failed: timeout")

    monkeypatch.setattr(report_service, "_insert_report", broken_insert)
    monkeypatch.setattr(storage, "delete", broken_delete)
    john = await principal_for(session, 3)
    with pytest.raises(ServiceUnavailable, match="metadata") as excinfo:
        await _upload(session, storage, john)
    cleanup = excinfo.value.details["cleanup"]
    assert not cleanup.ok
    assert "timeout" in cleanup.error


async def test_patient_cannot_download_another_patients_report(session, storage):
    jane = await _second_patient(session)
    outcome = await _upload(session, storage, await principal_for(session, jane.user_id))

    john = await principal_for(session, 3)
    with pytest.raises(Forbidden):
        await report_service.download(outcome.report.report_id, john, session, storage)

    for staff_id in (1, 2):
        staff = await principal_for(session, staff_id)
        downloaded = await report_service.download(outcome.report.report_id, staff, session, storage)
        assert downloaded.data == PDF


async def test_download_missing_object(session, storage, s3):
    john = await principal_for(session, 3)
    outcome = await _upload(session, storage, john)
    s3.objects.clear()
    with pytest.raises(NotFound, match="not found in storage"):
        await report_service.download(outcome.report.report_id, john, session, storage)


async def test_download_unknown_or_deleted_report(session, storage):
    john = await principal_for(session, 3)
    doctor = await principal_for(session, 2)
    with pytest.raises(NotFound):
        await report_service.download(12345, john, session, storage)

    outcome = await _upload(session, storage, john)
    await report_service.soft_delete_report(outcome.report.report_id, doctor, session)
    with pytest.raises(NotFound):
        await report_service.download(outcome.report.report_id, john, session, storage)


async def test_listing_is_filtered_for_patients(session, storage):
    jane = await _second_patient(session)
    john = await principal_for(session, 3)
    jane_p = await principal_for(session, jane.user_id)
    doctor = await principal_for(session, 2)

    first = await _upload(session, storage, john)
    await _upload(session, storage, jane_p)
    second = await _upload(session, storage, john)

    # Patients never see other owners, whatever filter they ask for
    johns = await report_service.list_reports(john, session, owner_id=jane.user_id)
    assert [r.report_id for r in johns] == [second.report.report_id, first.report.report_id]

    assert len(await report_service.list_reports(doctor, session)) == 3
    filtered = await report_service.list_reports(doctor, session, owner_id=jane.user_id)
    assert [r.user_id for r in filtered] == [jane.user_id]
    assert filtered[0].patient_name == "Jane Roe"


async def test_only_staff_can_delete_reports(session, storage):
    john = await principal_for(session, 3)
    outcome = await _upload(session, storage, john)
    with pytest.raises(Forbidden):
        await report_service.soft_delete_report(outcome.report.report_id, john, session)

    admin = await principal_for(session, 1)
    await report_service.soft_delete_report(outcome.report.report_id, admin, session)
    assert await report_service.list_reports(admin, session) == []
    row = await session.get(Report, outcome.report.report_id)
    assert row.is_active is False


def test_download_filename():
    assert download_filename("X-ray: chest", "image/png") == "X-ray__chest.png"
    assert download_filename("scan", "image/jpeg") == "scan.jpg"
    assert download_filename("scan", "text/plain") == "scan.file"
