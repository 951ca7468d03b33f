from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.common import Money, ShopifyId


class ShopifyProductCategory(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    full_name: Optional[str] = None


class ShopifyProductImage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: ShopifyId
    src: Optional[str] = None


class ShopifyVariant(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: ShopifyId
    price: Money
    title: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    compare_at_price: Optional[Money] = None
    inventory_quantity: Optional[int] = None
    image_id: Optional[ShopifyId] = None


class ShopifyProductPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: ShopifyId
    title: str
    vendor: Optional[str] = None
    product_type: Optional[str] = None
    handle: Optional[str] = None
    status: Optional[str] = None
    tags: Optional[str] = None
    category: Optional[ShopifyProductCategory] = None
    image: Optional[ShopifyProductImage] = None
    images: list[ShopifyProductImage] = Field(default_factory=list)
    variants: list[ShopifyVariant] = Field(min_length=1)

    def tag_list(self) -> list[str]:
        return [tag.strip() for tag in (self.tags or "").split(",") if tag.strip()]

    def image_for(self, variant: ShopifyVariant) -> Optional[str]:
        if variant.image_id:
            for image in self.images:
                if image.id == variant.image_id:
                    return image.src
        if self.image is not None:
            return self.image.src
        return self.images[0].src if self.images else None
