from sqlalchemy import Column, Integer, ForeignKey, Numeric, String, Boolean, DateTime, JSON, Index, text
from sqlalchemy.orm import relationship

from app.data.database import Base


class CartLineModel(Base):
    __tablename__ = "cart_lines"

    id = Column(Integer, primary_key=True)
    cart_session_id = Column(Integer, ForeignKey("cart_sessions.id"), nullable=False, index=True)
    menu_item_id = Column(Integer, nullable=False)

    #snapshot z katalogu w momencie dodania
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=False, default="")
    image_url = Column(String(500), nullable=False)
    in_stock = Column(Boolean, nullable=False, default=True)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)

    customization = Column(JSON, nullable=False, default=dict)
    customization_key = Column(String(40), nullable=False)
    special_instructions = Column(String(500), nullable=True)

    removed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)

    cart_session = relationship("CartSessionModel")

    __table_args__ = (
        Index(
            "uq_cart_lines_active_item",
            "cart_session_id",
            "menu_item_id",
            "customization_key",
            unique=True,
            postgresql_where=text("removed = false"),
            sqlite_where=text("removed = 0"),
        ),
    )
