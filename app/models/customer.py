import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.database import Base


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("company_id", "shopify_customer_id", name="uq_customers_company_shopify_customer"),
    )

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    shopify_customer_id = Column(String(64), nullable=False)

    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    email = Column(String(254), nullable=True)
    phone = Column(String(100), nullable=True, index=True)
    default_address = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)

    order_count = Column(Integer, nullable=False, default=0)
    last_purchase_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    orders = relationship("Order", back_populates="customer")
