# app/domain/cart.py
from dataclasses import dataclass
from enum import Enum
from typing import Union


class OwnerKind(str, Enum):
    USER = "USER"
    ANONYMOUS = "ANONYMOUS"


class CartStatus(str, Enum):
    ACTIVE = "ACTIVE"
    MERGED = "MERGED"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class UserOwner:
    user_id: str

    kind = OwnerKind.USER

    @property
    def ref(self) -> str:
        return self.user_id


@dataclass(frozen=True)
class AnonymousOwner:
    token: str

    kind = OwnerKind.ANONYMOUS

    @property
    def ref(self) -> str:
        return self.token


CartOwner = Union[UserOwner, AnonymousOwner]


def owner_from_columns(kind: str, ref: str) -> CartOwner:
    if OwnerKind(kind) is OwnerKind.USER:
        return UserOwner(ref)
    return AnonymousOwner(ref)
