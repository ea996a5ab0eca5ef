import logging
import httpx
from typing import Optional
from ..config import settings
from ..errors import FetchError

logger = logging.getLogger(__name__)

class WishListClient:
    """
    Downloads raw wish list text. Callers validate the source first; this client
    only classifies network failures. Redirects are not followed, so a 3xx
    counts as a failed fetch and can never lead off the allowed origins.
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client or httpx.AsyncClient(
            headers={"User-Agent": settings.USER_AGENT},
            timeout=settings.REQUEST_TIMEOUT_SECONDS,
            follow_redirects=False
        )

    async def fetch(self, source: str) -> str:
        try:
            resp = await self.client.get(source)
        except httpx.TimeoutException as e:
            raise FetchError(source, f"timed out ({e.__class__.__name__})") from e
        except httpx.HTTPError as e:
            raise FetchError(source, f"network error: {e}") from e

        if not resp.is_success:
            raise FetchError(source, f"HTTP {resp.status_code}", status_code=resp.status_code)

        text = resp.text
        if not text.strip():
            raise FetchError(source, "empty response body", status_code=resp.status_code)

        logger.info(f"Fetched {len(text)} characters of wish list from {source}")
        return text

    async def aclose(self):
        await self.client.aclose()
