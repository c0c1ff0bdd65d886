import secrets
from contextlib import contextmanager

import redis
from app.domain.errors import CartConflict
from app.utils.retry import redis_retry
from app.utils.settings import REDIS_URL, CART_LOCK_TTL_SECONDS
from app.utils.logging import get_logger

logger = get_logger(__name__)

#LUA porownaj i usun, atomicity
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

#redis wykonuje atomowo przez lua, skrypt dziala jako jedna nieprzerywalna operacja
#nie mozna wcisnac sie miedzy GET a DEL, wiec get + porownanie + del wszystko naraz


class LockService:
    """
    -blokada mutacji koszyka (owner, merchant) na czas dedup + upsert linii
    -zwalnianie locka tylko przez wlasciciela tokenu
    -atomowosc przy pomocy lua
    """

    def __init__(self, url: str | None = None, client: redis.Redis | None = None):
        self.redis = client or redis.Redis.from_url(
            url or REDIS_URL,
            decode_responses=True,
        )

    @staticmethod
    def _key(cart_key: str) -> str:
        return f"cart:{cart_key}:lock"

    @redis_retry()
    def acquire_cart_lock(self, cart_key: str, token: str, ttl: int = CART_LOCK_TTL_SECONDS) -> bool:
        key = self._key(cart_key)
        logger.debug(f"Acquire lock {key}")
        #SET cart:USER:42:1:lock "<token>" NX EX 10
        return bool(self.redis.set(name=key, value=token, nx=True, ex=ttl))

    @redis_retry()
    def release_cart_lock(self, cart_key: str, token: str) -> bool:
        key = self._key(cart_key)
        logger.debug(f"Release lock {key}")
        res = self.redis.eval(_RELEASE_LUA, 1, key, token)
        return bool(res)

    @contextmanager
    def cart_lock(self, cart_key: str):
        token = secrets.token_hex(8)
        if not self.acquire_cart_lock(cart_key, token):
            raise CartConflict(f"Koszyk {cart_key} jest modyfikowany przez inna operacje")
        try:
            yield
        finally:
            self.release_cart_lock(cart_key, token)
