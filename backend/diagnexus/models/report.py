from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.sql import func
from diagnexus.database import Base


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (
        CheckConstraint("file_size > 0", name="ck_reports_file_size"),
    )

    report_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    file_path = Column(String(500), unique=True, nullable=False)  # storage key
    file_size = Column(Integer, nullable=False)
    file_type = Column(String(100), nullable=False)
    comments = Column(Text)
    updated_by = Column(Integer, ForeignKey("users.user_id"), nullable=False)
    updated_date = Column(DateTime(timezone=True), server_default=func.now())
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
