# catalog_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Catalog Service (dev mock)")


MERCHANTS = {
    1: {"id": 1, "name": "Chicken Palace", "active": True, "delivery_fee": "1500.00", "min_order_amount": "5000.00"},
    2: {"id": 2, "name": "Pizza Corner", "active": True, "delivery_fee": "1000.00", "min_order_amount": "3000.00"},
    3: {"id": 3, "name": "Closed Grill", "active": False, "delivery_fee": "800.00", "min_order_amount": "0.00"},
}

MENU_ITEMS = {
    1: {
        7: {"id": 7, "merchant_id": 1, "name": "Fried Chicken", "description": "Two pieces",
            "price": "1000.00", "discounted_price": None, "in_stock": True, "active": True},
        8: {"id": 8, "merchant_id": 1, "name": "Jollof Rice", "description": "",
            "price": "2500.00", "discounted_price": "2200.00", "in_stock": True, "active": True},
        9: {"id": 9, "merchant_id": 1, "name": "Chapman", "description": "Cocktail",
            "price": "900.00", "discounted_price": None, "in_stock": False, "active": True},
    },
    2: {
        11: {"id": 11, "merchant_id": 2, "name": "Margherita", "description": "12 inch",
             "price": "4500.00", "discounted_price": None, "in_stock": True, "active": True},
    },
}


@app.get("/merchants/{merchant_id}")
def get_merchant(merchant_id: int):
    merchant = MERCHANTS.get(merchant_id)
    if not merchant:
        raise HTTPException(status_code=404, detail="Merchant not found")
    return merchant


@app.get("/merchants/{merchant_id}/items/{item_id}")
def get_item(merchant_id: int, item_id: int):
    item = MENU_ITEMS.get(merchant_id, {}).get(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Menu item not found")
    return item
