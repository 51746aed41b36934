from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Request
from diagnexus.auth import UserPrincipal
from diagnexus.deps import get_storage, require_admin
from diagnexus.services.storage_service import KEY_PREFIX, StorageService

router = APIRouter()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check():
    return {"success": True, "message": "DiagNexus API is running", "timestamp": _now()}


@router.get("/health/database")
async def database_status(request: Request):
    database = request.app.state.db
    connected = await database.ping()
    return {
        "success": connected,
        "connected": connected,
        "error": database.last_error,
        "pool": database.pool_status(),
        "timestamp": _now(),
    }


@router.get("/storage/test")
async def storage_test(
    storage: StorageService = Depends(get_storage),
    current_user: UserPrincipal = Depends(require_admin),
):
    result = await storage.test_connection()
    return {**result, "bucket": storage.bucket, "region": storage.region, "timestamp": _now()}


@router.get("/storage/debug")
async def storage_debug(
    storage: StorageService = Depends(get_storage),
    current_user: UserPrincipal = Depends(require_admin),
):
    connection = await storage.test_connection()
    report_keys = await storage.list_files(prefix=f"{KEY_PREFIX}/") if connection["success"] else []
    presigned = {key: await storage.generate_presigned_url(key, expires_in=300) for key in report_keys[:5]}
    return {
        "success": connection["success"],
        "bucket": storage.bucket,
        "region": storage.region,
        "connection": connection,
        "medical_reports": report_keys,
        "presigned_urls": presigned,
        "timestamp": _now(),
    }
