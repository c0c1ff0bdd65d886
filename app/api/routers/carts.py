#app/api/routers/carts.py
from fastapi import APIRouter, Depends, Header, HTTPException, Query

from app.api.deps import get_owner, get_service
from app.domain.cart import CartOwner
from app.domain.errors import (
    CartConflict,
    CartError,
    ItemUnavailable,
    MerchantUnavailable,
    NotFound,
    PersistenceFailure,
)
from app.domain.schemas import AddItemIn, CartSnapshot, MergeResult, UpdateItemIn
from app.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, (NotFound, ItemUnavailable)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (MerchantUnavailable, CartConflict)):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, PersistenceFailure):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=CartSnapshot)
def get_cart(
    merchant_id: int | None = Query(None, gt=0),
    owner: CartOwner = Depends(get_owner),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.get_cart(owner, merchant_id)
    except CartError as e:
        raise _http_error(e)


@router.post("/items", response_model=CartSnapshot)
def add_item(
    payload: AddItemIn,
    owner: CartOwner = Depends(get_owner),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.add_item(
            owner=owner,
            merchant_id=payload.merchant_id,
            menu_item_id=payload.menu_item_id,
            quantity=payload.quantity,
            customization=payload.customization,
            special_instructions=payload.special_instructions,
        )
    except (CartError, ValueError) as e:
        raise _http_error(e)


@router.put("/items/{line_id}", response_model=CartSnapshot)
def update_item(
    line_id: int,
    payload: UpdateItemIn,
    owner: CartOwner = Depends(get_owner),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.update_item(owner, line_id, payload.quantity)
    except CartError as e:
        raise _http_error(e)


@router.delete("/items/{line_id}", response_model=CartSnapshot)
def remove_item(
    line_id: int,
    owner: CartOwner = Depends(get_owner),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.remove_item(owner, line_id)
    except CartError as e:
        raise _http_error(e)


@router.post("/merge", response_model=MergeResult)
def merge_cart(
    x_user_id: str | None = Header(None),
    x_session_id: str | None = Header(None),
    svc: CartService = Depends(get_service),
):
    if not x_user_id or not x_session_id:
        raise HTTPException(status_code=400, detail="Scalenie wymaga X-User-ID i X-Session-ID")
    try:
        return svc.merge_on_login(x_user_id, x_session_id)
    except CartError as e:
        raise _http_error(e)
