from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.data.models.cart import CartSessionModel
from app.data.models.cart_item import CartLineModel
from app.domain.cart import AnonymousOwner, CartOwner, CartStatus, UserOwner
from app.domain.errors import CartConflict, ItemUnavailable, NotFound, PersistenceFailure
from app.domain.schemas import (
    CartLineOut,
    CartSessionOut,
    CartSnapshot,
    MerchantInfo,
    MergeResult,
)
from app.repos.cart_repo import CartSessionRepo
from app.repos.cart_line_repo import CartLineRepo
from app.services.catalog_client import CatalogClient
from app.services.lock_service import LockService
from app.services.totals import compute_summary
from app.utils.clock import ensure_utc, utcnow
from app.utils.retry import conflict_retry
from app.utils.settings import CART_TAX_RATE
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Prosta implementacja cqrs dla koszyka wielu restauracji
    commands (add, update, remove, merge) modyfikuja stan w jednej transakcji
    query (get) tylko odczyt
    kazda operacja zwraca pelny snapshot koszyka
    """

    def __init__(
        self,
        db: Session,
        catalog: CatalogClient,
        lock_service: LockService,
        tax_rate: Decimal = CART_TAX_RATE,
    ):
        self.db = db
        self.sessions = CartSessionRepo(db)
        self.lines = CartLineRepo(db)
        self.catalog = catalog
        self.lock_service = lock_service
        self.tax_rate = tax_rate

    @contextmanager
    def _unit_of_work(self):
        #jedna operacja = jedna transakcja, nic czesciowego nie zostaje
        try:
            yield
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Naruszenie unikalnosci, ponawiam operacje: {e.orig}")
            raise CartConflict("Konflikt wspolbieznosci - rownolegly zapis koszyka") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Blad bazy danych: {e}")
            raise PersistenceFailure("Baza danych niedostepna") from e
        except Exception:
            self.db.rollback()
            raise

    def _touch(self, session: CartSessionModel, now: datetime) -> None:
        # Optimistic locking warunek na wersje
        if not self.sessions.touch(session, now):
            raise CartConflict(
                f"Konflikt wspolbieznosci - sesja {session.id} zostala zmodyfikowana przez inna operacje"
            )

    @staticmethod
    def _lock_key(owner: CartOwner, merchant_id: int) -> str:
        return f"{owner.kind.value}:{owner.ref}:{merchant_id}"

    def _find_or_create(self, owner: CartOwner, merchant: MerchantInfo, now: datetime) -> CartSessionModel:
        session = self.sessions.find_active(owner, merchant.id, now)
        if session:
            return session
        return self.sessions.create(owner, merchant, now)

    def _owned_line(self, owner: CartOwner, line_id: int, now: datetime) -> Tuple[CartLineModel, CartSessionModel]:
        line = self.lines.get(line_id)
        session = line.cart_session if line else None

        #cudza linia wyglada dokladnie tak samo jak nieistniejaca
        if (
            line is None
            or line.removed
            or session is None
            or session.owner != owner
            or session.status != CartStatus.ACTIVE.value
            or ensure_utc(session.expires_at) <= now
        ):
            raise NotFound(f"Pozycja koszyka {line_id} nie istnieje")
        return line, session

    def _snapshot(self, session: CartSessionModel | None, merchant: MerchantInfo | None = None) -> CartSnapshot:
        if session is None:
            return CartSnapshot()

        merchant = merchant or self.catalog.get_merchant(session.merchant_id)
        lines = self.lines.list_active(session.id)

        return CartSnapshot(
            session=CartSessionOut.model_validate(session).model_copy(
                update={"merchant_name": merchant.name}
            ),
            lines=[CartLineOut.model_validate(line) for line in lines],
            summary=compute_summary(lines, merchant, self.tax_rate),
        )

    #query - odczyt
    def get_cart(self, owner: CartOwner, merchant_id: int | None = None) -> CartSnapshot:
        now = utcnow()
        with self._unit_of_work():
            if merchant_id is not None:
                session = self.sessions.find_active(owner, merchant_id, now)
            else:
                #bez merchanta - ostatnio modyfikowany koszyk wlasciciela
                session = self.sessions.find_latest_active(owner, now)
            return self._snapshot(session)

    #commands
    @conflict_retry()
    def add_item(
        self,
        owner: CartOwner,
        merchant_id: int,
        menu_item_id: int,
        quantity: int = 1,
        customization: Dict[str, Any] | None = None,
        special_instructions: str | None = None,
    ) -> CartSnapshot:

        if quantity <= 0:
            raise ValueError("Ilosc musi byc wieksza niz 0")

        logger.info(f"Pobieranie pozycji {menu_item_id} restauracji {merchant_id} z catalog-service")
        item = self.catalog.get_item(merchant_id, menu_item_id)

        if item.merchant_id != merchant_id:
            raise ItemUnavailable(merchant_id, menu_item_id, "inna restauracja")
        if not item.active:
            raise ItemUnavailable(merchant_id, menu_item_id, "nieaktywna")
        if not item.in_stock:
            raise ItemUnavailable(merchant_id, menu_item_id, "brak na stanie")

        merchant = self.catalog.get_merchant(merchant_id)
        now = utcnow()

        # Redis lock na (owner, merchant) na czas dedup + upsert
        with self.lock_service.cart_lock(self._lock_key(owner, merchant_id)):
            with self._unit_of_work():
                session = self._find_or_create(owner, merchant, now)

                existing = self.lines.find_by_item(session.id, menu_item_id, customization, now)
                if existing:
                    logger.info(
                        f"Pozycja {menu_item_id} juz jest w koszyku {session.id}, zwiekszam ilosc "
                        f"z {existing.quantity} o {quantity}"
                    )
                    self.lines.upsert_quantity(existing, existing.quantity + quantity, now)
                    if special_instructions:
                        existing.special_instructions = special_instructions
                else:
                    logger.info(f"Dodaje nowa pozycje {menu_item_id} do koszyka {session.id}")
                    self.lines.insert(
                        session.id,
                        item,
                        quantity,
                        customization,
                        special_instructions,
                        now,
                    )

                self._touch(session, now)
                snapshot = self._snapshot(session, merchant)

        logger.info(f"Pozycja {menu_item_id} dodana do koszyka {snapshot.session.id}")
        return snapshot

    @conflict_retry()
    def update_item(self, owner: CartOwner, line_id: int, quantity: int) -> CartSnapshot:
        now = utcnow()
        with self._unit_of_work():
            _, session = self._owned_line(owner, line_id, now)
            lock_key = self._lock_key(owner, session.merchant_id)

        # ten sam lock co add_item, wlasnosc sprawdzana ponownie juz pod lockiem
        with self.lock_service.cart_lock(lock_key):
            with self._unit_of_work():
                line, session = self._owned_line(owner, line_id, now)

                if quantity <= 0:
                    logger.info(f"Usuwanie linii {line_id} z koszyka {session.id}")
                else:
                    logger.info(f"Zmiana ilosci linii {line_id} w koszyku {session.id}: {line.quantity} -> {quantity}")

                self.lines.upsert_quantity(line, quantity, now)
                self._touch(session, now)
                snapshot = self._snapshot(session)

        return snapshot

    def remove_item(self, owner: CartOwner, line_id: int) -> CartSnapshot:
        return self.update_item(owner, line_id, 0)

    @conflict_retry()
    def merge_on_login(self, user_id: str, anonymous_token: str) -> MergeResult:
        """
        Scalenie koszyka anonimowego z koszykiem uzytkownika po zalogowaniu.

        Dla kazdej aktywnej sesji anonimowej (jedna na restauracje):
        - uzytkownik ma aktywny koszyk tej restauracji -> linie przenoszone
          z deduplikacja, sesja anonimowa oznaczana MERGED
        - nie ma -> sesja anonimowa po prostu przechodzi na uzytkownika

        Wszystko w jednej transakcji, items_merged liczy linie (nie sztuki).
        Drugie wywolanie nie znajduje juz sesji anonimowych i zwraca merged=False.
        """
        user = UserOwner(user_id)
        anonymous = AnonymousOwner(anonymous_token)
        now = utcnow()

        with self._unit_of_work():
            anonymous_sessions = self.sessions.list_active(anonymous, now)
            if not anonymous_sessions:
                logger.info(f"Brak anonimowego koszyka do scalenia dla uzytkownika {user_id}")
                return MergeResult(merged=False)

            items_merged = 0
            for anon_session in anonymous_sessions:
                user_session = self.sessions.find_active(user, anon_session.merchant_id, now)

                if user_session:
                    moved = self.lines.reassign_session(anon_session.id, user_session.id, now)
                    if not self.sessions.mark_merged(anon_session, user.user_id, now):
                        raise CartConflict(f"Sesja {anon_session.id} zmieniona w trakcie scalania")
                    self._touch(user_session, now)
                    logger.info(
                        f"Scalono sesje {anon_session.id} do {user_session.id} "
                        f"(merchant {anon_session.merchant_id}, linie: {moved})"
                    )
                else:
                    moved = len(self.lines.list_active(anon_session.id))
                    if not self.sessions.transfer_ownership(anon_session, user, now):
                        raise CartConflict(f"Sesja {anon_session.id} zmieniona w trakcie scalania")
                    logger.info(
                        f"Sesja {anon_session.id} przeniesiona na uzytkownika {user_id} "
                        f"(merchant {anon_session.merchant_id}, linie: {moved})"
                    )

                items_merged += moved

            result = MergeResult(merged=True, items_merged=items_merged)

        return result
