from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.orm import relationship

from app.core.database import Base


class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    locations = relationship("CompanyLocation", back_populates="company", cascade="all, delete-orphan")
    webhook_secrets = relationship("ShopifyWebhookSecret", back_populates="company", cascade="all, delete-orphan")


class ShopifyWebhookSecret(Base):
    __tablename__ = "shopify_webhook_secrets"
    __table_args__ = (UniqueConstraint("company_id", "label", name="uq_shopify_webhook_secrets_company_label"),)

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    label = Column(String(100), nullable=False)
    secret = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    company = relationship("Company", back_populates="webhook_secrets")


class CompanyLocation(Base):
    __tablename__ = "company_locations"

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    # Shopify location id used by ?location_id= on inbound webhooks
    shopify_location_id = Column(String(64), nullable=True, unique=True, index=True)
    # myshopify domain, e.g. "acme.myshopify.com"
    shopify_shop_name = Column(String(255), nullable=True)
    default_merchant_user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    company = relationship("Company", back_populates="locations")
    default_merchant = relationship("User", foreign_keys=[default_merchant_user_id])
