from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.core.database import unit_of_work
from app.models.catalog import UNCATEGORIZED_CATEGORY, ProductItem
from app.models.company import CompanyLocation
from app.schemas.shopify_product import ShopifyProductPayload
from app.services.order_line_items import get_or_create_category, get_or_create_vendor

logger = logging.getLogger(__name__)


def sync_product(db: Session, payload: ShopifyProductPayload, location: CompanyLocation) -> list[ProductItem]:
    """Mirror a Shopify product into one ProductItem per variant for ``location``."""
    company_id = location.company_id
    with unit_of_work(db):
        vendor_name = (payload.vendor or "").strip()
        vendor = get_or_create_vendor(db, company_id, vendor_name) if vendor_name else None
        if payload.category is not None and payload.category.name.strip():
            category = get_or_create_category(
                db, company_id, payload.category.name.strip(), payload.category.full_name
            )
        else:
            category = get_or_create_category(db, company_id, UNCATEGORIZED_CATEGORY)

        existing = {
            item.shopify_variant_id: item
            for item in db.query(ProductItem)
            .filter(
                ProductItem.company_location_id == location.id,
                ProductItem.shopify_variant_id.in_([variant.id for variant in payload.variants]),
            )
            .all()
        }

        items: list[ProductItem] = []
        for variant in payload.variants:
            item = existing.get(variant.id)
            if item is None:
                item = ProductItem(company_location_id=location.id, shopify_variant_id=variant.id)
                db.add(item)
                existing[variant.id] = item
            item.shopify_product_id = payload.id
            item.product_title = payload.title.strip() or "Unknown"
            item.variant_title = variant.title
            item.sku = variant.sku
            item.barcode = variant.barcode
            item.price = variant.price
            item.compare_at_price = variant.compare_at_price
            item.inventory_quantity = variant.inventory_quantity
            item.status = payload.status
            item.product_type = payload.product_type
            item.handle = payload.handle
            item.tags = payload.tag_list()
            item.image_url = payload.image_for(variant)
            item.vendor_id = vendor.id if vendor else None
            item.category_id = category.id
            items.append(item)
        db.flush()

    logger.info(
        "product synced product=%s variants=%s",
        payload.id,
        len(items),
        extra={"company_id": company_id},
    )
    return items
