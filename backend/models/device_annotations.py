from sqlalchemy import Boolean, Column, DateTime, String, Text, func

from db.base import Base


class DeviceAnnotation(Base):
    __tablename__ = "device_annotations"

    device_id = Column(String, primary_key=True)
    notes = Column(Text, nullable=False, default="")
    withholding_resolved = Column(Boolean, nullable=False, default=False)
    suspended = Column(Boolean, nullable=False, default=False)
    deactivated = Column(Boolean, nullable=False, default=False)
    blacklisted = Column(Boolean, nullable=False, default=False)
    byod_swap = Column(Boolean, nullable=False, default=False)
    customer_name = Column(String, nullable=True)
    customer_number = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
