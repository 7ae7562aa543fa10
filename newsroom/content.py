"""
Rich-text sanitization for article bodies.

``ContentSanitizer`` parses markup with BeautifulSoup's ``html.parser``
and rebuilds it from an allow-list: dangerous elements are dropped along
with their contents, unknown-but-harmless elements are unwrapped (their
text survives), and only allow-listed attributes are kept.  The output
re-parses to the same tree, so sanitizing twice is a no-op.
"""
import logging
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from bs4 import BeautifulSoup
from bs4.element import PreformattedString

from newsroom.config import Settings

logger = logging.getLogger(__name__)

# Removed together with everything inside them.
FORBIDDEN_TAGS: frozenset[str] = frozenset({
    "script", "style", "iframe", "frame", "frameset", "object", "embed", "applet",
    "form", "input", "button", "textarea", "select", "option", "noscript",
    "template", "link", "meta", "base", "svg", "math",
})

_URL_ATTRIBUTES = frozenset({"href", "src"})
_SAFE_URL_SCHEMES = frozenset({"", "http", "https", "mailto", "tel"})
_WHITESPACE_RE = re.compile(r"\s+")
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s)")

ELLIPSIS = "..."


@dataclass(frozen=True)
class SanitizerConfig:
    allowed_tags: frozenset[str]
    allowed_attributes: frozenset[str]

    @classmethod
    def from_settings(cls, settings: Settings) -> "SanitizerConfig":
        return cls(
            allowed_tags=frozenset(t.lower() for t in settings.SANITIZER_ALLOWED_TAGS),
            allowed_attributes=frozenset(a.lower() for a in settings.SANITIZER_ALLOWED_ATTRIBUTES),
        )


def _is_safe_url(value: str) -> bool:
    # Control characters and whitespace are stripped by browsers before the
    # scheme is interpreted ("java\tscript:").
    compact = "".join(ch for ch in value if ch > " ")
    try:
        scheme = urlsplit(compact).scheme.lower()
    except ValueError:
        return False
    return scheme in _SAFE_URL_SCHEMES


def _parse(markup: str) -> BeautifulSoup:
    return BeautifulSoup(markup or "", "html.parser")


def plain_text(markup: str) -> str:
    """Return the visible text of *markup* with whitespace collapsed."""
    text = _parse(markup).get_text(" ")
    return _WHITESPACE_RE.sub(" ", text).strip()


def count_words(markup: str) -> int:
    text = plain_text(markup)
    return len(text.split(" ")) if text else 0


class ContentSanitizer:
    def __init__(self, config: SanitizerConfig) -> None:
        self.config = config

    def sanitize(self, raw_html: str) -> str:
        soup = _parse(raw_html)

        # Comments, doctypes, CDATA and processing instructions.
        for node in soup.find_all(string=lambda s: isinstance(s, PreformattedString)):
            node.extract()

        for tag in soup.find_all(sorted(FORBIDDEN_TAGS)):
            if not tag.decomposed:
                tag.decompose()

        for tag in soup.find_all(True):
            if tag.name not in self.config.allowed_tags:
                tag.unwrap()
                continue
            for attr in list(tag.attrs):
                name = attr.lower()
                if name.startswith("on") or name not in self.config.allowed_attributes:
                    del tag[attr]
                elif name in _URL_ATTRIBUTES and not _is_safe_url(tag.get(attr) or ""):
                    del tag[attr]

        return str(soup)

    @staticmethod
    def extract_image_refs(safe_html: str) -> list[str]:
        """Return the ``src`` of every inline ``<img>``, in document order."""
        return [img["src"] for img in _parse(safe_html).find_all("img") if img.get("src")]

    @staticmethod
    def summarize(safe_html: str, max_len: int = 160) -> str:
        """
        Plain-text summary of at most *max_len* characters (plus ellipsis).

        Prefers cutting after the last complete sentence inside the budget,
        then at the last word boundary, and only then mid-word.
        """
        text = plain_text(safe_html)
        if len(text) <= max_len:
            return text

        window = text[:max_len]
        # The character just past the window decides whether a final "." ends a sentence.
        sentence_ends = [m.end() for m in _SENTENCE_END_RE.finditer(text, 0, max_len + 1)]
        if sentence_ends:
            cut = sentence_ends[-1]
        else:
            space = window.rfind(" ")
            cut = space if space > 0 else max_len
        return text[:cut].rstrip() + ELLIPSIS
