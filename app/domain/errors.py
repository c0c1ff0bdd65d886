# app/domain/errors.py
"""
Bledy domeny koszyka.

Walidacyjne (MerchantUnavailable, ItemUnavailable, NotFound) wracaja do
wolajacego jako typowane bledy, PersistenceFailure przerywa cala operacje,
CartConflict jest ponawiany przez conflict_retry.
Duplikaty aktywnych sesji/linii nie sa bledem - repo je loguje i scala.
"""


class CartError(Exception):
    pass


class MerchantUnavailable(CartError):
    def __init__(self, merchant_id: int, reason: str = "nieaktywna"):
        super().__init__(f"Restauracja {merchant_id} niedostepna ({reason})")
        self.merchant_id = merchant_id


class ItemUnavailable(CartError):
    def __init__(self, merchant_id: int, menu_item_id: int, reason: str = "nie istnieje"):
        super().__init__(
            f"Pozycja {menu_item_id} restauracji {merchant_id} niedostepna ({reason})"
        )
        self.merchant_id = merchant_id
        self.menu_item_id = menu_item_id


class NotFound(CartError):
    #celowo bez rozroznienia "nie istnieje" / "nie twoje"
    pass


class PersistenceFailure(CartError):
    pass


class CartConflict(CartError):
    pass
