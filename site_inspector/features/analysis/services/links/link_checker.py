import asyncio
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin, urlsplit

import httpx

from site_inspector.features.analysis.exceptions import ProbeError
from site_inspector.features.analysis.services.parsing.document import HtmlDocument
from site_inspector.platform.config import settings
from site_inspector.platform.logger import get_logger
from site_inspector.platform.utils.url_validator import requestable_host

logger = get_logger(__name__)


@dataclass
class ResolvedLink:
    href: str
    url: str
    internal: bool


@dataclass
class LinkReport:
    internal: int = 0
    external: int = 0
    broken: List[str] = field(default_factory=list)


def _host_key(url: str) -> Tuple[Optional[str], Optional[int]]:
    # Raises ValueError for an invalid port or a broken IPv6 literal
    parts = urlsplit(url)
    return parts.hostname, parts.port


class LinkChecker:
    """
    Resolves, classifies and probes the hyperlinks of one page.

    Probes run concurrently, at most `concurrency` at a time. A probe that
    fails at the transport level counts the link as broken.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: Optional[float] = None,
        concurrency: Optional[int] = None,
        skipped_schemes: Optional[Iterable[str]] = None,
    ):
        self.client = client
        self.timeout = timeout if timeout is not None else settings.LINK_CHECK_TIMEOUT_SECONDS
        self.concurrency = concurrency or settings.LINK_CHECK_CONCURRENCY
        schemes = skipped_schemes if skipped_schemes is not None else settings.SKIPPED_LINK_SCHEMES
        self.skipped_schemes = {s.lower() for s in schemes}

    def resolve(self, document: HtmlDocument, base_url: str) -> List[ResolvedLink]:
        """Absolute, classified targets of every usable <a href>, in document order."""
        base_host = _host_key(base_url)
        links = []

        for href in document.attribute_values("a", "href"):
            href = href.strip()
            if not href:
                continue

            try:
                if urlsplit(href).scheme.lower() in self.skipped_schemes:
                    continue
                url = urljoin(base_url, href)
                host = _host_key(url)
                requestable_host(url)
            except (ValueError, httpx.InvalidURL):
                logger.debug(f"Skipping malformed link {href!r} on {base_url}")
                continue

            links.append(ResolvedLink(href=href, url=url, internal=host == base_host))

        return links

    async def check(self, document: HtmlDocument, base_url: str) -> LinkReport:
        links = self.resolve(document, base_url)
        report = LinkReport()
        if not links:
            return report

        semaphore = asyncio.Semaphore(self.concurrency)
        # Anchors pointing at the same URL share one probe
        probes: Dict[str, asyncio.Task] = {}
        for link in links:
            if link.url not in probes:
                probes[link.url] = asyncio.ensure_future(self._is_broken(link.url, semaphore))

        try:
            outcomes = await asyncio.gather(*(probes[link.url] for link in links))
        finally:
            for task in probes.values():
                task.cancel()

        # Single writer after the join; gather keeps document order
        for link, broken in zip(links, outcomes):
            if link.internal:
                report.internal += 1
            else:
                report.external += 1
            if broken:
                report.broken.append(link.url)

        logger.info(
            f"Checked {len(probes)} unique links on {base_url}: "
            f"{report.internal} internal, {report.external} external, {len(report.broken)} broken"
        )
        return report

    async def _is_broken(self, url: str, semaphore: asyncio.Semaphore) -> bool:
        async with semaphore:
            try:
                status_code = await self.probe(url)
            except ProbeError as e:
                logger.info(str(e))
                return True
        return status_code >= 400

    async def probe(self, url: str) -> int:
        """
        HEAD the URL and return its status code.

        Raises:
            ProbeError: the request could not complete (network, DNS, timeout,
                unsupported scheme, unencodable host).
        """
        try:
            requestable_host(url)
            response = await asyncio.wait_for(
                self.client.head(url, timeout=self.timeout, follow_redirects=True),
                self.timeout,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as e:
            raise ProbeError(url, "timed out") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ProbeError(url, str(e) or type(e).__name__) from e
        except ValueError as e:
            raise ProbeError(url, f"invalid URL ({type(e).__name__})") from e
        return response.status_code
