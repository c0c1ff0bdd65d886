#app/data/models/cart.py
from sqlalchemy import Column, Integer, String, DateTime, Index, text

from app.data.database import Base
from app.domain.cart import CartOwner, owner_from_columns


class CartSessionModel(Base):
    __tablename__ = "cart_sessions"

    id = Column(Integer, primary_key=True)
    external_ref = Column(String(64), nullable=False, unique=True)

    #CartOwner: USER albo ANONYMOUS, ref to user id albo token sesji
    owner_kind = Column(String(16), nullable=False)
    owner_ref = Column(String(128), nullable=False)
    merchant_id = Column(Integer, nullable=False)

    status = Column(String(16), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    merged_into_owner_id = Column(String(128), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    @property
    def owner(self) -> CartOwner:
        return owner_from_columns(self.owner_kind, self.owner_ref)

    __table_args__ = (
        #jedna aktywna sesja na (owner, merchant)
        Index(
            "uq_cart_sessions_active_owner_merchant",
            "owner_kind",
            "owner_ref",
            "merchant_id",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )
