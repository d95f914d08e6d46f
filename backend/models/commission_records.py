# models/commission_records.py

from sqlalchemy import Boolean, Column, Float, Integer, String

from db.base import Base


class CommissionRecord(Base):
    __tablename__ = "commission_records"

    id = Column(Integer, primary_key=True, index=True)
    device_id = Column(String, nullable=False, index=True)     # IMEI
    payment_date = Column(String, nullable=False, default="")  # YYYY-MM-DD, may be empty
    activation_date = Column(String, nullable=False, default="")
    payment_type = Column(String, nullable=False, default="")
    amount = Column(Float, nullable=False)                     # negative = withholding
    description = Column(String, nullable=False, default="")
    adjustment_reason = Column(String, nullable=True)
    month_number = Column(Integer, nullable=True)               # 1-6 or null
    sale_type = Column(String, nullable=False, default="Unknown")
    rep_username = Column(String, nullable=True)
    store = Column(String, nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    payment_received = Column(Boolean, nullable=True)
    manually_entered = Column(Boolean, nullable=False, default=False)
    source_file_id = Column(String, nullable=True, index=True)
