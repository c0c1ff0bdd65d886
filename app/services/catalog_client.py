# app/services/catalog_client.py
import requests

from app.domain.errors import ItemUnavailable, MerchantUnavailable
from app.domain.schemas import CatalogItem, MerchantInfo
from app.utils.retry import http_retry
from app.utils.settings import CATALOG_SERVICE_URL
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogClient:
    """
    Klient catalog-service (restauracje i menu), tylko odczyt.
    404 zamieniamy na bledy domeny, reszta bledow HTTP idzie dalej po retry.
    """

    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or CATALOG_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def get_merchant(self, merchant_id: int) -> MerchantInfo:
        url = f"{self.base_url}/merchants/{merchant_id}"
        logger.info(f"CatalogClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            raise MerchantUnavailable(merchant_id, "nie istnieje")
        resp.raise_for_status()
        return MerchantInfo.model_validate(resp.json())

    @http_retry()
    def get_item(self, merchant_id: int, menu_item_id: int) -> CatalogItem:
        url = f"{self.base_url}/merchants/{merchant_id}/items/{menu_item_id}"
        logger.info(f"CatalogClient GET {url}")

        resp = requests.get(url, timeout=self.timeout)
        if resp.status_code == 404:
            raise ItemUnavailable(merchant_id, menu_item_id)
        resp.raise_for_status()
        return CatalogItem.model_validate(resp.json())
