from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from diagnexus.auth import UserPrincipal
from diagnexus.database import get_db
from diagnexus.deps import get_current_user, get_storage
from diagnexus.schemas.common import ok
from diagnexus.schemas.report import UploadResponse
from diagnexus.services.report_service import report_service
from diagnexus.services.storage_service import StorageService

router = APIRouter()


@router.get("")
async def list_reports(
    user_id: Optional[int] = Query(None, alias="userId", description="Owner filter (Doctor/Admin only)"),
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(get_current_user),
):
    reports = await report_service.list_reports(current_user, db, owner_id=user_id)
    return ok([r.model_dump(mode="json") for r in reports])


@router.post("/upload", status_code=201)
async def upload_report(
    file: Optional[UploadFile] = File(None),
    name: Optional[str] = Form(None),
    comments: Optional[str] = Form(None),
    user_id: Optional[int] = Form(None, alias="userId"),
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    current_user: UserPrincipal = Depends(get_current_user),
):
    data = await file.read() if file is not None else None
    outcome = await report_service.upload(
        actor=current_user,
        data=data,
        filename=file.filename if file is not None else "",
        display_name=name,
        mime_type=file.content_type if file is not None else None,
        db=db,
        storage=storage,
        owner_id=user_id,
        comment=comments,
    )
    body = UploadResponse(**outcome.report.model_dump(), storage_url=outcome.storage_url)
    return ok(body.model_dump(mode="json"), message="Report uploaded successfully")


@router.get("/{report_id}/download")
async def download_report(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    storage: StorageService = Depends(get_storage),
    current_user: UserPrincipal = Depends(get_current_user),
):
    report = await report_service.download(report_id, current_user, db, storage)
    return Response(
        content=report.data,
        media_type=report.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{report.filename}"',
            "Cache-Control": "private, no-cache, no-store, must-revalidate",
            "X-Report-ID": str(report.report_id),
        },
    )


@router.delete("/{report_id}")
async def delete_report(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserPrincipal = Depends(get_current_user),
):
    await report_service.soft_delete_report(report_id, current_user, db)
    return ok({"report_id": report_id}, message="Report deleted successfully")
