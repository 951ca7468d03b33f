import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.database import Base

UNCATEGORIZED_CATEGORY = "Uncategorized"


class Vendor(Base):
    __tablename__ = "vendors"
    __table_args__ = (UniqueConstraint("company_id", "name", name="uq_vendors_company_name"),)

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("company_id", "name", name="uq_categories_company_name"),)

    id = Column(Integer, primary_key=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    full_name = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ProductItem(Base):
    __tablename__ = "product_items"
    __table_args__ = (
        UniqueConstraint("company_location_id", "shopify_variant_id", name="uq_product_items_location_variant"),
    )

    id = Column(Integer, primary_key=True)
    company_location_id = Column(Integer, ForeignKey("company_locations.id"), nullable=False, index=True)
    shopify_product_id = Column(String(64), nullable=True, index=True)
    shopify_variant_id = Column(String(64), nullable=False)

    product_title = Column(String(255), nullable=False, default="Unknown")
    variant_title = Column(String(255), nullable=True)
    sku = Column(String(255), nullable=True)
    barcode = Column(String(255), nullable=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    compare_at_price = Column(Numeric(12, 2), nullable=True)
    status = Column(String(30), nullable=True)
    product_type = Column(String(255), nullable=True)
    handle = Column(String(255), nullable=True)
    image_url = Column(Text, nullable=True)
    tags = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)
    inventory_quantity = Column(Integer, nullable=True)

    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    vendor = relationship("Vendor")
    category = relationship("Category")
