import asyncio
from dataclasses import dataclass
from typing import Optional

import httpx

from site_inspector.features.analysis.exceptions import FetchError
from site_inspector.platform.config import settings
from site_inspector.platform.logger import get_logger
from site_inspector.platform.utils.url_validator import requestable_host

logger = get_logger(__name__)


@dataclass
class FetchedPage:
    url: str
    final_url: str
    status_code: int
    content_type: Optional[str]
    content: bytes
    encoding: Optional[str]


class PageFetcher:
    """Downloads the raw HTML of a page with a bounded timeout."""

    def __init__(self, client: httpx.AsyncClient, timeout: Optional[float] = None):
        self.client = client
        self.timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS

    async def fetch(self, url: str) -> FetchedPage:
        """
        GET the page, following redirects.

        The HTTP status of the page is reported but not judged here: an error
        page is still a document. Only transport failures raise.

        Raises:
            FetchError: connection, DNS, TLS or timeout failure, or a URL
                httpx refuses to request.
        """
        # httpx applies the timeout per phase; wait_for caps the whole exchange
        try:
            requestable_host(url)
            response = await asyncio.wait_for(
                self.client.get(url, timeout=self.timeout, follow_redirects=True),
                self.timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise FetchError(url, f"timed out after {self.timeout:g}s ({type(e).__name__})") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(url, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise FetchError(url, f"invalid URL ({type(e).__name__}: {e})") from e

        logger.info(f"Fetched {url} -> {response.status_code} ({len(response.content)} bytes)")

        return FetchedPage(
            url=url,
            final_url=str(response.url),
            status_code=response.status_code,
            content_type=response.headers.get("content-type"),
            content=response.content,
            encoding=response.charset_encoding,
        )
