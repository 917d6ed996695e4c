# app/clients/commerce.py

import logging
from decimal import Decimal

import httpx
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.core.config import settings

logger = logging.getLogger(__name__)


class OrderSnapshot(BaseModel):
    """The part of an order the points engine cares about."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    user_id: str
    total: Decimal
    points_used: int = 0


class CommerceClient:
    """
    Async client for the order service REST API.
    Authenticates with a service bearer token.
    """
    def __init__(self, base_url: str, api_token: str):
        self.base_url = base_url
        headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}
        timeouts = httpx.Timeout(10.0, read=30.0)
        self.async_client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeouts
        )

    async def get_order(self, order_id: str) -> OrderSnapshot | None:
        """Loads an order. Returns None when the order service answers 404."""
        try:
            response = await self.async_client.get(f"orders/{order_id}")
        except httpx.RequestError as e:
            logger.error(f"Network error while loading order {order_id} from {e.request.url!r}.", exc_info=True)
            raise

        if response.status_code == 404:
            return None
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error while loading order {order_id}: {e.response.text}", exc_info=True)
            raise

        data = response.json()
        # The order service wraps payloads in {"data": ...}
        if isinstance(data, dict) and "data" in data:
            data = data["data"]
        return OrderSnapshot.model_validate(data)

    async def close(self):
        await self.async_client.aclose()


commerce_client = CommerceClient(
    base_url=settings.COMMERCE_API_URL,
    api_token=settings.COMMERCE_API_TOKEN
)
