"""
Failures raised while analyzing a page.

FetchError and ParseError end a job in the error state. ProbeError never
leaves the link checker: a failed probe is recorded as a broken link.
"""


class AnalysisError(Exception):
    """Base class for page analysis failures."""


class FetchError(AnalysisError):
    """The page could not be retrieved (connection, DNS, TLS, timeout)."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to fetch {url}: {reason}")
        self.url = url
        self.reason = reason


class ParseError(AnalysisError):
    """The fetched content is not a parseable HTML document."""


class ProbeError(AnalysisError):
    """A liveness probe for a single link failed at the transport level."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Probe failed for {url}: {reason}")
        self.url = url
        self.reason = reason
