# app/services/totals.py
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from app.data.models.cart_item import CartLineModel
from app.domain.schemas import CartSummary, MerchantInfo
from app.utils.settings import CART_TAX_RATE

CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_summary(
    lines: Iterable[CartLineModel],
    merchant: MerchantInfo | None,
    tax_rate: Decimal = CART_TAX_RATE,
) -> CartSummary:
    """Podsumowanie koszyka liczone tylko po stronie serwera, na Decimal.

    Podatek zaokraglany do grosza przed zsumowaniem, wiec
    total == subtotal + tax_amount + delivery_fee dokladnie.
    Bez sesji (merchant None) oplata za dostawe i minimum sa zerowe.
    """
    active = [line for line in lines if not line.removed]

    subtotal = _money(sum((Decimal(line.line_total) for line in active), Decimal("0")))
    item_count = sum(line.quantity for line in active)
    tax_amount = _money(subtotal * Decimal(tax_rate))

    delivery_fee = _money(merchant.delivery_fee) if merchant else _money(0)
    min_order = _money(merchant.min_order_amount) if merchant else _money(0)

    return CartSummary(
        subtotal=subtotal,
        tax_amount=tax_amount,
        delivery_fee=delivery_fee,
        total=subtotal + tax_amount + delivery_fee,
        item_count=item_count,
        min_order=min_order,
        meets_min_order=subtotal >= min_order,
    )
