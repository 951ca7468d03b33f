from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import require_any_permission
from app.models.order_remark import OrderRemark
from app.models.user import User
from app.routers.fulfillment import get_order_for_company
from app.schemas.fulfillment import RemarkCreate, RemarkUpdate
from app.schemas.order import OrderRemarkResponse
from app.services.fulfillment import add_remark

router = APIRouter(prefix="/api/admin/orders/{order_id}/remarks", tags=["order-remarks"])


def _get_remark(db: Session, order_id: int, remark_id: int) -> OrderRemark:
    remark = db.query(OrderRemark).filter(OrderRemark.id == remark_id, OrderRemark.order_id == order_id).first()
    if not remark:
        raise HTTPException(status_code=404, detail="Remark not found")
    return remark


@router.get("", response_model=list[OrderRemarkResponse])
def list_remarks(
    order_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_any_permission("orders.read", "orders.manage")),
):
    get_order_for_company(db, order_id, user.company_id)
    return (
        db.query(OrderRemark)
        .filter(OrderRemark.order_id == order_id)
        .order_by(OrderRemark.created_at.asc(), OrderRemark.id.asc())
        .all()
    )


@router.post("", response_model=OrderRemarkResponse, status_code=201)
def create_remark(
    order_id: int,
    body: RemarkCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_any_permission("orders.manage")),
):
    order = get_order_for_company(db, order_id, user.company_id)
    remark = add_remark(db, order, body.stage, body, user)
    db.commit()
    db.refresh(remark)
    return remark


@router.patch("/{remark_id}", response_model=OrderRemarkResponse)
def update_remark(
    order_id: int,
    remark_id: int,
    body: RemarkUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_any_permission("orders.manage")),
):
    get_order_for_company(db, order_id, user.company_id)
    remark = _get_remark(db, order_id, remark_id)
    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(remark, field, value)
    db.commit()
    db.refresh(remark)
    return remark


@router.delete("/{remark_id}")
def delete_remark(
    order_id: int,
    remark_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(require_any_permission("orders.manage")),
):
    get_order_for_company(db, order_id, user.company_id)
    remark = _get_remark(db, order_id, remark_id)
    db.delete(remark)
    db.commit()
    return {"ok": True}
