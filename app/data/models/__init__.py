#import wszystkich modeli zeby SQLAlchemy je zarejestrowal w base metadata

from app.data.models.cart import CartSessionModel
from app.data.models.cart_item import CartLineModel

__all__ = ["CartSessionModel", "CartLineModel"]
