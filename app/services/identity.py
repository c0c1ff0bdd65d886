# app/services/identity.py
import secrets

from app.domain.cart import AnonymousOwner, CartOwner, UserOwner


def new_anonymous_token() -> str:
    return "cart_" + secrets.token_hex(8)


def resolve_owner(user_id: str | None, session_token: str | None) -> CartOwner:
    """Zalogowany uzytkownik zawsze wygrywa z tokenem sesji anonimowej."""
    if user_id and user_id.strip():
        return UserOwner(user_id.strip())
    if session_token and session_token.strip():
        return AnonymousOwner(session_token.strip())
    return AnonymousOwner(new_anonymous_token())
