import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB

from app.core.database import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("company_id", "email", name="uq_users_company_email"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False, index=True)

    # "sub" claim of the identity provider token
    auth_subject = Column(String(255), nullable=True, unique=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(254), nullable=False)
    mobile = Column(String(100), nullable=True)

    is_rider = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    permissions = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    # Shopify POS staff ids attributed to this user
    shopify_user_ids = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    coupon_codes = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def has_any_permission(self, *keys: str) -> bool:
        granted = set(self.permissions or [])
        return any(key in granted for key in keys)
