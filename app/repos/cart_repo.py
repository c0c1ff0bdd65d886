# app/repos/cart_repo.py
import secrets
from datetime import datetime, timedelta
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value

from app.data.models.cart import CartSessionModel
from app.domain.cart import CartOwner, CartStatus, OwnerKind, UserOwner
from app.domain.errors import MerchantUnavailable
from app.domain.schemas import MerchantInfo
from app.utils.settings import CART_TTL_SECONDS
from app.utils.logging import get_logger

logger = get_logger(__name__)


def new_external_ref() -> str:
    return "cart_" + secrets.token_hex(8)


class CartSessionRepo:
    """
    Sesje koszyka, jedna aktywna na (owner, merchant).
    Kazdy zapis sesji idzie przez CAS na kolumnie version, repo nie commituje.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, session_id: int) -> CartSessionModel | None:
        return self.db.get(CartSessionModel, session_id)

    def _active_query(self, owner: CartOwner, now: datetime):
        return (
            select(CartSessionModel)
            .where(
                CartSessionModel.owner_kind == owner.kind.value,
                CartSessionModel.owner_ref == owner.ref,
                CartSessionModel.status == CartStatus.ACTIVE.value,
                CartSessionModel.expires_at > now,
            )
            .order_by(CartSessionModel.updated_at.desc(), CartSessionModel.id.desc())
        )

    def find_active(self, owner: CartOwner, merchant_id: int, now: datetime) -> CartSessionModel | None:
        rows = self.db.execute(
            self._active_query(owner, now).where(CartSessionModel.merchant_id == merchant_id)
        ).scalars().all()

        if not rows:
            return None

        if len(rows) > 1:
            #nie powinno sie zdarzyc przy unikalnym indeksie, bierzemy najswiezsza
            logger.warning(
                f"Naruszenie niezmiennika: {len(rows)} aktywnych sesji dla {owner.kind.value}:{owner.ref} "
                f"merchant {merchant_id}, kanoniczna {rows[0].id}"
            )
        return rows[0]

    def find_latest_active(self, owner: CartOwner, now: datetime) -> CartSessionModel | None:
        return self.db.execute(self._active_query(owner, now).limit(1)).scalars().first()

    def list_active(self, owner: CartOwner, now: datetime) -> List[CartSessionModel]:
        return list(self.db.execute(self._active_query(owner, now)).scalars().all())

    def create(self, owner: CartOwner, merchant: MerchantInfo, now: datetime) -> CartSessionModel:
        if not merchant.active:
            raise MerchantUnavailable(merchant.id)

        #zwolnij miejsce w unikalnym indeksie jesli wisi przeterminowana sesja
        self.expire_stale(owner, merchant.id, now)

        session = CartSessionModel(
            external_ref=new_external_ref(),
            owner_kind=owner.kind.value,
            owner_ref=owner.ref,
            merchant_id=merchant.id,
            status=CartStatus.ACTIVE.value,
            version=1,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=CART_TTL_SECONDS),
        )
        self.db.add(session)
        self.db.flush()

        logger.info(
            f"Utworzono sesje koszyka {session.id} ({session.external_ref}) "
            f"dla {owner.kind.value}:{owner.ref}, merchant {merchant.id}"
        )
        return session

    def expire_stale(self, owner: CartOwner, merchant_id: int, now: datetime) -> int:
        result = self.db.execute(
            update(CartSessionModel)
            .where(
                CartSessionModel.owner_kind == owner.kind.value,
                CartSessionModel.owner_ref == owner.ref,
                CartSessionModel.merchant_id == merchant_id,
                CartSessionModel.status == CartStatus.ACTIVE.value,
                CartSessionModel.expires_at <= now,
            )
            .values(
                status=CartStatus.EXPIRED.value,
                version=CartSessionModel.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def expire_all_stale(self, now: datetime) -> int:
        result = self.db.execute(
            update(CartSessionModel)
            .where(
                CartSessionModel.status == CartStatus.ACTIVE.value,
                CartSessionModel.expires_at <= now,
            )
            .values(
                status=CartStatus.EXPIRED.value,
                version=CartSessionModel.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # ---- zapisy z optimistic locking ----

    def _update_versioned(self, session: CartSessionModel, **values) -> bool:
        #np update set version 2 where id 1 and version 1
        result = self.db.execute(
            update(CartSessionModel)
            .where(
                CartSessionModel.id == session.id,
                CartSessionModel.version == session.version,
            )
            .values(version=session.version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        #odswiez obiekt w pamieci bez oznaczania go jako dirty
        set_committed_value(session, "version", session.version + 1)
        for key, value in values.items():
            set_committed_value(session, key, value)
        return True

    def touch(self, session: CartSessionModel, now: datetime) -> bool:
        return self._update_versioned(session, updated_at=now)

    def transfer_ownership(self, session: CartSessionModel, new_owner: UserOwner, now: datetime) -> bool:
        #tylko ANONYMOUS -> USER, nigdy w druga strone
        if session.owner_kind != OwnerKind.ANONYMOUS.value or new_owner.kind is not OwnerKind.USER:
            raise ValueError("Przeniesienie wlasnosci tylko z anonimowego na uzytkownika")

        self.expire_stale(new_owner, session.merchant_id, now)
        return self._update_versioned(
            session,
            owner_kind=new_owner.kind.value,
            owner_ref=new_owner.ref,
            updated_at=now,
        )

    def mark_merged(self, session: CartSessionModel, merged_into_user_id: str, now: datetime) -> bool:
        return self._update_versioned(
            session,
            status=CartStatus.MERGED.value,
            merged_into_owner_id=merged_into_user_id,
            updated_at=now,
        )
