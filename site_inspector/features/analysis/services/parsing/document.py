import re
from typing import List, Optional

from bs4 import BeautifulSoup, Doctype
from bs4.exceptions import ParserRejectedMarkup

from site_inspector.features.analysis.exceptions import ParseError


# Content types that can hold an HTML document. Servers that omit the
# header entirely are given the benefit of the doubt.
_HTML_CONTENT_TYPES = ("text/", "application/xhtml+xml", "application/xml")

_LEGACY_DOCTYPES = [
    (re.compile(r"XHTML\s+1\.1", re.I), "XHTML 1.1"),
    (re.compile(r"XHTML\s+1\.0", re.I), "XHTML 1.0"),
    (re.compile(r"HTML\s+4\.01", re.I), "HTML 4.01"),
    (re.compile(r"HTML\s+4\.0", re.I), "HTML 4.0"),
    (re.compile(r"HTML\s+3\.2", re.I), "HTML 3.2"),
    (re.compile(r"HTML\s+2\.0", re.I), "HTML 2.0"),
]


class HtmlDocument:
    """
    Parsed, read-only view of an HTML page.

    Wraps a BeautifulSoup tree and exposes the queries the analyzer needs:
    text of the first element of a tag, element counts, attribute values in
    document order, and the declared doctype.
    """

    def __init__(self, soup: BeautifulSoup):
        self.soup = soup

    @classmethod
    def parse(
        cls,
        content,
        content_type: Optional[str] = None,
        encoding: Optional[str] = None,
    ) -> "HtmlDocument":
        """
        Build a document from raw bytes or text.

        Raises:
            ParseError: the content is declared as a non-HTML type, or the
                parser rejects the markup.
        """
        if content_type:
            mime = content_type.split(";", 1)[0].strip().lower()
            if mime and not mime.startswith(_HTML_CONTENT_TYPES):
                raise ParseError(f"Unsupported content type: {mime}")

        try:
            if isinstance(content, bytes):
                soup = BeautifulSoup(content, "html.parser", from_encoding=encoding)
            else:
                soup = BeautifulSoup(content, "html.parser")
        except ParserRejectedMarkup as e:
            raise ParseError(f"Malformed HTML: {e}") from e

        return cls(soup)

    def first_text(self, tag: str) -> str:
        """Whitespace-trimmed text of the first `tag` element, '' if there is none."""
        element = self.soup.find(tag)
        if element is None:
            return ""
        return element.get_text().strip()

    def count(self, tag: str) -> int:
        return len(self.soup.find_all(tag))

    def attribute_values(self, tag: str, attribute: str) -> List[str]:
        """Values of `attribute` on every `tag` element carrying it, in document order."""
        values = []
        for element in self.soup.find_all(tag):
            value = element.get(attribute)
            if value is None:
                continue
            if isinstance(value, list):  # multi-valued attributes such as class
                value = " ".join(value)
            values.append(value)
        return values

    def has_input_of_type(self, input_type: str) -> bool:
        wanted = input_type.lower()
        for element in self.soup.find_all("input"):
            if (element.get("type") or "").strip().lower() == wanted:
                return True
        return False

    @property
    def doctype(self) -> Optional[str]:
        for node in self.soup.contents:
            if isinstance(node, Doctype):
                return str(node).strip()
        return None

    @property
    def html_version(self) -> str:
        doctype = self.doctype
        if doctype:
            for pattern, label in _LEGACY_DOCTYPES:
                if pattern.search(doctype):
                    return label
        # <!DOCTYPE html>, an unknown doctype, or none at all
        return "HTML5"
