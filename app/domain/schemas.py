# app/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, List
from decimal import Decimal
from datetime import datetime


class AddItemIn(BaseModel):
    """Schema dla dodawania pozycji menu do koszyka."""

    merchant_id: int = Field(..., gt=0, description="ID restauracji (musi być > 0)")
    menu_item_id: int = Field(..., gt=0, description="ID pozycji menu (musi być > 0)")
    quantity: int = Field(1, gt=0, description="Ilość (musi być > 0, powyżej limitu obcinana)")
    customization: Dict[str, Any] = Field(default_factory=dict)
    special_instructions: str | None = Field(None, max_length=500)


class UpdateItemIn(BaseModel):
    """Schema dla zmiany ilości linii, 0 usuwa linię."""

    quantity: int = Field(..., ge=0)


# --- Catalog Lookup ---

class MerchantInfo(BaseModel):
    id: int
    name: str = "Merchant"
    active: bool = True
    delivery_fee: Decimal = Decimal("0.00")
    min_order_amount: Decimal = Decimal("0.00")


class CatalogItem(BaseModel):
    id: int
    merchant_id: int
    name: str
    description: str = ""
    image_url: str | None = None
    price: Decimal
    discounted_price: Decimal | None = None
    in_stock: bool = True
    active: bool = True

    @property
    def effective_price(self) -> Decimal:
        #cena promocyjna wygrywa jesli jest ustawiona
        if self.discounted_price:
            return self.discounted_price
        return self.price


# --- Snapshot ---

class CartSessionOut(BaseModel):
    id: int
    external_ref: str
    owner_kind: str
    owner_ref: str
    merchant_id: int
    merchant_name: str | None = None
    status: str
    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CartLineOut(BaseModel):
    id: int
    cart_session_id: int
    menu_item_id: int
    name: str
    description: str
    image_url: str
    in_stock: bool
    quantity: int
    unit_price: Decimal
    line_total: Decimal
    customization: Dict[str, Any]
    special_instructions: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CartSummary(BaseModel):
    subtotal: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    delivery_fee: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    item_count: int = 0
    min_order: Decimal = Decimal("0.00")
    meets_min_order: bool = True


class CartSnapshot(BaseModel):
    """Widok koszyka (read-only), liczony przy kazdym odczycie."""

    session: CartSessionOut | None = None
    lines: List[CartLineOut] = Field(default_factory=list)
    summary: CartSummary = Field(default_factory=CartSummary)


class MergeResult(BaseModel):
    merged: bool
    items_merged: int = 0
