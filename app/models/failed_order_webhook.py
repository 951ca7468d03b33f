import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from app.core.database import Base


class FailedOrderWebhook(Base):
    __tablename__ = "failed_order_webhooks"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    company_location_id = Column(Integer, ForeignKey("company_locations.id"), nullable=False)
    shopify_order_id = Column(String(64), nullable=True)
    topic = Column(String(100), nullable=True)
    payload = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False)
    error_message = Column(Text, nullable=False)
    error_stack = Column(Text, nullable=True)
    attempts = Column(Integer, nullable=False, default=1)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


Index("ix_failed_order_webhooks_company_resolved", FailedOrderWebhook.company_id, FailedOrderWebhook.resolved_at)
Index("ix_failed_order_webhooks_shopify_order", FailedOrderWebhook.company_id, FailedOrderWebhook.shopify_order_id)
