"""
Report service: the two-phase upload (object first, then metadata row, with a
compensating delete when the row cannot be written), authorized downloads
and role-filtered listing.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from diagnexus.auth import UserPrincipal
from diagnexus.config import get_settings
from diagnexus.database import STORE_ERRORS
from diagnexus.exceptions import (
    Forbidden,
    InvalidInput,
    NotFound,
    ServiceUnavailable,
    SideEffect,
)
from diagnexus.models.report import Report
from diagnexus.models.user import User
from diagnexus.schemas.report import ReportResponse
from diagnexus.services.auth_service import record_session
from diagnexus.services.storage_service import StorageService, sanitize_filename

logger = logging.getLogger("diagnexus.reports")

ALLOWED_TYPES = {"application/pdf", "image/jpeg", "image/jpg", "image/png"}
EXTENSIONS = {"application/pdf": "pdf", "image/jpeg": "jpg", "image/jpg": "jpg", "image/png": "png"}


@dataclass
class UploadOutcome:
    report: ReportResponse
    storage_url: str


@dataclass
class DownloadedReport:
    report_id: int
    filename: str
    data: bytes
    content_type: str
    patient_name: str
    storage_key: str
    activity_log: SideEffect


def validate_upload(data: Optional[bytes], display_name: Optional[str], mime_type: Optional[str]):
    """Checks that must pass before anything is written to storage."""
    if data is None or not display_name or not display_name.strip():
        raise InvalidInput("File and name are required")
    if mime_type not in ALLOWED_TYPES:
        raise InvalidInput("Invalid file type. Only PDF and images are allowed.")
    max_bytes = get_settings().max_upload_bytes
    if len(data) > max_bytes:
        raise InvalidInput(f"File size too large. Maximum {max_bytes // (1024 * 1024)}MB allowed.")
    if len(data) == 0:
        raise InvalidInput("Uploaded file is empty")


def download_filename(display_name: str, mime_type: str) -> str:
    return f"{sanitize_filename(display_name)}.{EXTENSIONS.get(mime_type, 'file')}"


class ReportService:
    def _report_query(self):
        owner = aliased(User)
        updater = aliased(User)
        return (
            select(Report, owner.name, updater.name)
            .join(owner, Report.user_id == owner.user_id)
            .outerjoin(updater, Report.updated_by == updater.user_id)
            .where(Report.is_active.is_(True))
        )

    def _to_response(self, report: Report, patient_name: str, updated_by_name: Optional[str]) -> ReportResponse:
        response = ReportResponse.model_validate(report)
        response.patient_name = patient_name
        response.updated_by_name = updated_by_name
        return response

    async def list_reports(
        self, principal: UserPrincipal, db: AsyncSession, owner_id: Optional[int] = None
    ) -> list[ReportResponse]:
        query = self._report_query()
        if principal.is_patient:
            query = query.where(Report.user_id == principal.user_id)
        elif owner_id is not None:
            query = query.where(Report.user_id == owner_id)
        query = query.order_by(Report.created_at.desc(), Report.report_id.desc())

        result = await db.execute(query)
        return [self._to_response(r, patient, updater) for r, patient, updater in result.all()]

    async def _insert_report(self, db: AsyncSession, **fields) -> Report:
        report = Report(**fields)
        db.add(report)
        await db.commit()
        await db.refresh(report)
        return report

    async def _cleanup_orphan(self, storage: StorageService, key: str) -> SideEffect:
        try:
            await storage.delete(key)
            logger.info("Removed orphaned object %s", key)
            return SideEffect(name="orphan_cleanup", ok=True)
        except ServiceUnavailable as e:
            logger.error("Failed to remove orphaned object %s: %s", key, e.message)
            return SideEffect(name="orphan_cleanup", ok=False, error=e.message)

    async def upload(
        self,
        actor: UserPrincipal,
        data: Optional[bytes],
        filename: str,
        display_name: Optional[str],
        mime_type: Optional[str],
        db: AsyncSession,
        storage: StorageService,
        owner_id: Optional[int] = None,
        comment: Optional[str] = None,
    ) -> UploadOutcome:
        validate_upload(data, display_name, mime_type)

        target_id = owner_id if owner_id is not None else actor.user_id
        if actor.is_patient and target_id != actor.user_id:
            raise Forbidden("Patients may only upload their own reports")
        owner = await db.get(User, target_id)
        if owner is None or not owner.is_active:
            raise NotFound(f"User {target_id} not found")

        key = storage.generate_upload_key(target_id, filename or display_name)
        logger.info("Uploading report for user %s: %s (%d bytes, %s)", target_id, key, len(data), mime_type)
        url = await storage.upload(key, data, mime_type, original_name=filename or "")

        try:
            report = await self._insert_report(
                db,
                user_id=target_id,
                name=display_name.strip(),
                file_path=key,
                file_size=len(data),
                file_type=mime_type,
                comments=comment or None,
                updated_by=actor.user_id,
                is_active=True,
            )
        except STORE_ERRORS as e:
            logger.exception("Saving metadata for %s failed", key)
            await db.rollback()
            cleanup = await self._cleanup_orphan(storage, key)
            raise ServiceUnavailable(
                "Failed to save file metadata to database",
                details={"cleanup": cleanup},
            ) from e

        logger.info("Report %s stored at %s", report.report_id, key)
        response = self._to_response(report, owner.name, actor.name)
        return UploadOutcome(report=response, storage_url=url)

    async def download(
        self, report_id: int, principal: UserPrincipal, db: AsyncSession, storage: StorageService
    ) -> DownloadedReport:
        result = await db.execute(self._report_query().where(Report.report_id == report_id))
        row = result.first()
        if row is None:
            raise NotFound("Report not found")
        report, patient_name, _ = row

        if not principal.can_access_owner(report.user_id):
            logger.warning(
                "User %s (%s) denied report %s owned by %s",
                principal.user_id, principal.role, report_id, report.user_id,
            )
            raise Forbidden()

        key = report.file_path
        file_type = report.file_type
        display_name = report.name

        if not await storage.exists(key):
            logger.error("Report %s points at missing object %s", report_id, key)
            raise NotFound(f"File not found in storage: {key}")

        stored = await storage.download(key)
        logger.info("User %s downloaded report %s (%d bytes)", principal.user_id, report_id, len(stored.data))

        activity = await record_session(
            db,
            principal.user_id,
            f"download:{report_id}",
            datetime.now(timezone.utc) + timedelta(seconds=get_settings().token_expire_seconds),
            name="download_log",
        )
        return DownloadedReport(
            report_id=report_id,
            filename=download_filename(display_name, file_type),
            data=stored.data,
            content_type=stored.content_type or file_type or "application/octet-stream",
            patient_name=patient_name,
            storage_key=key,
            activity_log=activity,
        )

    async def soft_delete_report(self, report_id: int, principal: UserPrincipal, db: AsyncSession) -> None:
        if not principal.can_view_all_reports:
            raise Forbidden("Your role does not permit deleting reports")
        report = await db.get(Report, report_id)
        if report is None or not report.is_active:
            raise NotFound("Report not found")
        report.is_active = False
        report.updated_by = principal.user_id
        report.updated_date = datetime.now(timezone.utc)
        await db.commit()
        logger.info("User %s deactivated report %s", principal.user_id, report_id)


report_service = ReportService()
