# app/repos/cart_line_repo.py
import hashlib
import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.data.models.cart_item import CartLineModel
from app.domain.schemas import CatalogItem
from app.utils.settings import CART_MAX_LINE_QUANTITY
from app.utils.logging import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")
DEFAULT_IMAGE_URL = "default-menu-item.jpg"


def customization_key(customization: Dict[str, Any] | None) -> str:
    """Stabilny klucz personalizacji (kolejnosc kluczy nie ma znaczenia)."""
    canonical = json.dumps(customization or {}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return (Decimal(unit_price) * quantity).quantize(CENT)


class CartLineRepo:
    def __init__(self, db: Session, max_quantity: int = CART_MAX_LINE_QUANTITY):
        self.db = db
        self.max_quantity = max_quantity

    def clamp(self, quantity: int) -> int:
        return max(1, min(quantity, self.max_quantity))

    def get(self, line_id: int) -> CartLineModel | None:
        return self.db.get(CartLineModel, line_id)

    def list_active(self, cart_session_id: int) -> List[CartLineModel]:
        return list(
            self.db.execute(
                select(CartLineModel)
                .where(
                    CartLineModel.cart_session_id == cart_session_id,
                    CartLineModel.removed.is_(False),
                )
                .order_by(CartLineModel.created_at.desc(), CartLineModel.id.desc())
            ).scalars().all()
        )

    def find_by_item(
        self,
        cart_session_id: int,
        menu_item_id: int,
        customization: Dict[str, Any] | None,
        now: datetime,
    ) -> CartLineModel | None:
        rows = self.db.execute(
            select(CartLineModel)
            .where(
                CartLineModel.cart_session_id == cart_session_id,
                CartLineModel.menu_item_id == menu_item_id,
                CartLineModel.customization_key == customization_key(customization),
                CartLineModel.removed.is_(False),
            )
            .order_by(CartLineModel.id)
        ).scalars().all()

        if not rows:
            return None

        canonical, duplicates = rows[0], rows[1:]
        if duplicates:
            logger.warning(
                f"Naruszenie niezmiennika: duplikat linii pozycji {menu_item_id} w sesji {cart_session_id}, "
                f"scalam {len(duplicates)} do linii {canonical.id}"
            )
            quantity = canonical.quantity + sum(d.quantity for d in duplicates)
            for dup in duplicates:
                dup.removed = True
                dup.updated_at = now
            self._set_quantity(canonical, quantity, now)
            self.db.flush()
        return canonical

    def _set_quantity(self, line: CartLineModel, quantity: int, now: datetime) -> None:
        #quantity i line_total zawsze razem
        line.quantity = self.clamp(quantity)
        line.line_total = line_total(line.unit_price, line.quantity)
        line.updated_at = now

    def upsert_quantity(self, line: CartLineModel, new_quantity: int, now: datetime) -> CartLineModel:
        if new_quantity <= 0:
            line.removed = True
            line.updated_at = now
        else:
            self._set_quantity(line, new_quantity, now)
        self.db.flush()
        return line

    def insert(
        self,
        cart_session_id: int,
        item: CatalogItem,
        quantity: int,
        customization: Dict[str, Any] | None,
        special_instructions: str | None,
        now: datetime,
    ) -> CartLineModel:
        unit_price = Decimal(item.effective_price).quantize(CENT)
        quantity = self.clamp(quantity)

        line = CartLineModel(
            cart_session_id=cart_session_id,
            menu_item_id=item.id,
            name=item.name,
            description=item.description or "",
            image_url=item.image_url or DEFAULT_IMAGE_URL,
            in_stock=item.in_stock,
            quantity=quantity,
            unit_price=unit_price,
            line_total=line_total(unit_price, quantity),
            customization=dict(customization or {}),
            customization_key=customization_key(customization),
            special_instructions=special_instructions,
            removed=False,
            created_at=now,
            updated_at=now,
        )
        self.db.add(line)
        self.db.flush()
        return line

    def reassign_session(self, from_session_id: int, to_session_id: int, now: datetime) -> int:
        """
        Przenosi aktywne linie z jednej sesji do drugiej.

        Linia o tym samym (menu_item_id, customization) co istniejaca linia
        docelowa nie jest przenoszona - ilosci sa sumowane (z limitem), a linia
        zrodlowa oznaczana jako removed. Zwraca liczbe przeniesionych lub
        scalonych linii.
        """
        target = {
            (line.menu_item_id, line.customization_key): line
            for line in self.list_active(to_session_id)
        }

        affected = 0
        for line in self.list_active(from_session_id):
            existing = target.get((line.menu_item_id, line.customization_key))

            if existing:
                #cena docelowej linii zostaje, to ona byla snapshotem uzytkownika
                self._set_quantity(existing, existing.quantity + line.quantity, now)
                if not existing.special_instructions and line.special_instructions:
                    existing.special_instructions = line.special_instructions
                line.removed = True
                line.updated_at = now
            else:
                line.cart_session_id = to_session_id
                line.updated_at = now
                target[(line.menu_item_id, line.customization_key)] = line
            affected += 1

        self.db.flush()
        return affected
