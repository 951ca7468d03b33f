import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.core.database import Base

SMS_TRIGGERS = (
    "order_received",
    "package_ready",
    "dispatched",
    "rider_dispatched",
    "delivery_complete",
)


class SmsPortalConfig(Base):
    __tablename__ = "sms_portal_configs"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, unique=True)
    auth_url = Column(String(500), nullable=False)
    sms_url = Column(String(500), nullable=False)
    username = Column(String(255), nullable=False)
    password = Column(String(255), nullable=False)
    campaign_name = Column(String(100), nullable=False)
    mask = Column(String(50), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SmsNotificationConfig(Base):
    __tablename__ = "sms_notification_configs"
    __table_args__ = (UniqueConstraint("company_id", "trigger", name="uq_sms_notification_configs_company_trigger"),)

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    trigger = Column(String(50), nullable=False)
    enabled = Column(Boolean, nullable=False, default=False)
    template = Column(Text, nullable=False, default="")
    send_to_customer = Column(Boolean, nullable=False, default=True)
    send_to_rider = Column(Boolean, nullable=False, default=True)
    additional_recipients = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SmsLog(Base):
    __tablename__ = "sms_logs"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    phone_number = Column(String(30), nullable=False)
    message = Column(Text, nullable=False)
    sent_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    status = Column(String(20), nullable=False, default="sent")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


Index("ix_sms_logs_company_created", SmsLog.company_id, SmsLog.created_at)
