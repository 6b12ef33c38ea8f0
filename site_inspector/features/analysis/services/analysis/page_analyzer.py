from typing import Optional

import httpx

from site_inspector.features.analysis.schemas.analysis import HEADING_TAGS, PageAnalysis
from site_inspector.features.analysis.services.fetching.page_fetcher import PageFetcher
from site_inspector.features.analysis.services.links.link_checker import LinkChecker
from site_inspector.features.analysis.services.parsing.document import HtmlDocument
from site_inspector.platform.config import settings
from site_inspector.platform.logger import get_logger

logger = get_logger(__name__)


class PageAnalyzer:
    """
    Fetches one page and turns it into a PageAnalysis.

    Each call opens its own httpx client, shared by the page fetch and the
    link probes. `transport` replaces the network (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        fetch_timeout: Optional[float] = None,
        link_timeout: Optional[float] = None,
        link_concurrency: Optional[int] = None,
    ):
        self.transport = transport
        self.fetch_timeout = fetch_timeout
        self.link_timeout = link_timeout
        self.link_concurrency = link_concurrency

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            headers={"User-Agent": settings.USER_AGENT},
            follow_redirects=True,
        )

    async def analyze(self, url: str) -> PageAnalysis:
        """
        Raises:
            FetchError: the page could not be retrieved.
            ParseError: the content is not a parseable HTML document.
        """
        async with self._build_client() as client:
            page = await PageFetcher(client, timeout=self.fetch_timeout).fetch(url)
            document = HtmlDocument.parse(page.content, page.content_type, page.encoding)

            checker = LinkChecker(client, timeout=self.link_timeout, concurrency=self.link_concurrency)
            links = await checker.check(document, url)

        return PageAnalysis(
            html_version=document.html_version,
            page_title=extract_title(document),
            headings=count_headings(document),
            internal_links=links.internal,
            external_links=links.external,
            broken_links=links.broken,
            login_form_detected=detect_login_form(document),
        )


def extract_title(document: HtmlDocument) -> str:
    return document.first_text("title")


def count_headings(document: HtmlDocument) -> dict:
    return {tag: document.count(tag) for tag in HEADING_TAGS}


def detect_login_form(document: HtmlDocument) -> bool:
    # Any password field counts, inside a <form> or not
    return document.has_input_of_type("password")
