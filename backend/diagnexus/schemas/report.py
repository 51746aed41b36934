from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class ReportResponse(BaseModel):
    report_id: int
    user_id: int
    name: str
    file_path: str
    file_size: int
    file_type: str
    comments: Optional[str] = None
    updated_by: int
    updated_date: Optional[datetime] = None
    is_active: bool
    created_at: Optional[datetime] = None
    patient_name: Optional[str] = None
    updated_by_name: Optional[str] = None

    class Config:
        from_attributes = True


class UploadResponse(ReportResponse):
    storage_url: Optional[str] = None
