# app/api/deps.py
from fastapi import Depends, Header, Response
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.domain.cart import CartOwner
from app.services.cart_service import CartService
from app.services.catalog_client import CatalogClient
from app.services.identity import resolve_owner
from app.services.lock_service import LockService


def get_catalog() -> CatalogClient:
    return CatalogClient()


def get_lock_service() -> LockService:
    return LockService()


def get_service(
    db: Session = Depends(get_db),
    catalog: CatalogClient = Depends(get_catalog),
    lock_service: LockService = Depends(get_lock_service),
) -> CartService:
    return CartService(db=db, catalog=catalog, lock_service=lock_service)


def get_owner(
    response: Response,
    x_user_id: str | None = Header(None),
    x_session_id: str | None = Header(None),
) -> CartOwner:
    owner = resolve_owner(x_user_id, x_session_id)
    #klient musi dostac token z powrotem zeby koszyk anonimowy byl stabilny
    if x_session_id or not x_user_id:
        response.headers["X-Session-ID"] = x_session_id or owner.ref
    return owner
