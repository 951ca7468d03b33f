from __future__ import annotations

from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.catalog import UNCATEGORIZED_CATEGORY, Category, ProductItem, Vendor
from app.models.company import CompanyLocation
from app.models.order import Order, OrderLineItem
from app.schemas.shopify_order import ShopifyLineItem


def get_or_create_vendor(db: Session, company_id: int, name: str) -> Vendor:
    vendor = db.query(Vendor).filter(Vendor.company_id == company_id, Vendor.name == name).first()
    if vendor is None:
        vendor = Vendor(company_id=company_id, name=name)
        db.add(vendor)
        db.flush()
    return vendor


def get_or_create_category(
    db: Session, company_id: int, name: str, full_name: str | None = None
) -> Category:
    category = db.query(Category).filter(Category.company_id == company_id, Category.name == name).first()
    if category is None:
        category = Category(company_id=company_id, name=name, full_name=full_name)
        db.add(category)
        db.flush()
    elif full_name and category.full_name != full_name:
        category.full_name = full_name
    return category


def ensure_product_item(db: Session, location: CompanyLocation, line_item: ShopifyLineItem) -> ProductItem:
    item = (
        db.query(ProductItem)
        .filter(
            ProductItem.company_location_id == location.id,
            ProductItem.shopify_variant_id == line_item.variant_id,
        )
        .first()
    )
    if item is not None:
        return item

    vendor_name = (line_item.vendor or "").strip()
    vendor = get_or_create_vendor(db, location.company_id, vendor_name) if vendor_name else None
    category = get_or_create_category(db, location.company_id, UNCATEGORIZED_CATEGORY)

    item = ProductItem(
        company_location_id=location.id,
        shopify_product_id=line_item.product_id,
        shopify_variant_id=line_item.variant_id,
        product_title=(line_item.title or "").strip() or "Unknown",
        variant_title=line_item.variant_title,
        sku=line_item.sku,
        price=line_item.price,
        vendor_id=vendor.id if vendor else None,
        category_id=category.id,
    )
    db.add(item)
    db.flush()
    return item


def upsert_line_item(
    db: Session,
    order: Order,
    line_item: ShopifyLineItem,
    location: CompanyLocation,
) -> OrderLineItem:
    """Attach or refresh the order line keyed by its Shopify line item id."""
    product_item = ensure_product_item(db, location, line_item)

    existing = next(
        (row for row in order.line_items if row.shopify_line_item_id == line_item.id),
        None,
    )
    if existing is None:
        existing = OrderLineItem(shopify_line_item_id=line_item.id)
        order.line_items.append(existing)

    existing.product_item_id = product_item.id
    existing.title = line_item.title
    existing.variant_title = line_item.variant_title
    existing.sku = line_item.sku
    existing.quantity = line_item.quantity
    existing.price = line_item.price
    existing.total_discount = line_item.total_discount or Decimal("0")
    return existing
