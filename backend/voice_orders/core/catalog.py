import logging
from typing import List, Optional

import httpx

from voice_orders.core.errors import CatalogError
from voice_orders.schemas.orders import ProductRef

logger = logging.getLogger(__name__)


class CatalogClient:
    """
    Fetches the product list from the remote catalog service.

    Only `_id` and `name` are kept from each record (upstream order preserved).
    No retries and no cached fallback: any failure raises CatalogError.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def fetch_products(self) -> List[ProductRef]:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                r = await client.get(self._url)
        except httpx.HTTPError as e:
            raise CatalogError(f"GET {self._url} failed: {e}", cause=e) from e

        if r.status_code >= 400:
            raise CatalogError(f"GET {self._url} returned {r.status_code}\nBODY:\n{r.text[:2000]}")

        try:
            data = r.json()
        except ValueError as e:
            raise CatalogError(f"Catalog response is not JSON: {r.text[:200]!r}", cause=e) from e

        if not isinstance(data, list):
            raise CatalogError(f"Catalog response is not an array (got {type(data).__name__})")

        products: List[ProductRef] = []
        for i, record in enumerate(data):
            if not isinstance(record, dict) or "_id" not in record or "name" not in record:
                raise CatalogError(f"Catalog record #{i} is missing '_id' or 'name'")
            products.append(ProductRef(_id=record["_id"], name=str(record["name"])))

        logger.info("Fetched %d products from catalog", len(products))
        return products
