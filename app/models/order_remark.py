from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from app.core.database import Base

REMARK_STAGES = (
    "order_received",
    "sample_free_issue",
    "print",
    "ready_to_dispatch",
    "dispatched",
    "delivery_complete",
    "invoice_complete",
)
REMARK_TYPES = ("internal", "external")


class OrderRemark(Base):
    __tablename__ = "order_remarks"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    stage = Column(String(30), nullable=False)
    type = Column(String(20), nullable=False, default="internal")
    content = Column(Text, nullable=False)
    show_on_invoice = Column(Boolean, nullable=False, default=False)
    added_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    order = relationship("Order", back_populates="remarks")
    added_by = relationship("User")
