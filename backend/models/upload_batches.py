from sqlalchemy import Column, DateTime, Float, Integer, String, func

from db.base import Base


class UploadBatch(Base):
    __tablename__ = "upload_batches"

    id = Column(String, primary_key=True)
    filename = Column(String, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    record_count = Column(Integer, nullable=False, default=0)
    total_amount = Column(Float, nullable=False, default=0.0)
