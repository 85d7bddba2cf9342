"""
Version history extraction from App Store listing markup.

The listing page layout changes without notice, so extraction is a ranked
list of independent strategies. Newer layouts are tried first, looser
selectors follow, and the page description is the floor. The first strategy
that yields at least one entry wins; outputs are never merged.
"""

import copy
import re
from typing import Callable, List, Optional, Tuple

import structlog
from bs4 import BeautifulSoup, Tag

from .models import ExtractionResult, VersionEntry

logger = structlog.get_logger(__name__)

VERSION_TOKEN_PATTERN = re.compile(r"[0-9]+\.[0-9]+(?:\.[0-9]+)*")

# Field selectors for the itemized layouts, in lookup order per field.
VERSION_HISTORY_ITEM = ".version-history__item"
VERSION_HISTORY_VERSION = (".version-history__item__version-number", "h4")
VERSION_HISTORY_NOTES = (".version-history__item__release-notes", ".whats-new__content")

LOOSE_ITEM = ".whats-new__item, .release-note, .version"
LOOSE_VERSION = (".whats-new__title, h4, .version-number",)
LOOSE_NOTES = (".whats-new__content, .release-notes, p",)

Strategy = Callable[[BeautifulSoup], List[VersionEntry]]


def normalize_version(label: str) -> Optional[str]:
    """Pull '2.4.10' out of labels like 'Version 2.4.10'; keep the raw label otherwise."""
    label = label.strip()
    if not label:
        return None
    match = VERSION_TOKEN_PATTERN.search(label)
    return match.group(0) if match else label


def _joined_text(root: Tag, selector: str) -> str:
    """Text of every element matching the selector, in document order."""
    return "".join(el.get_text() for el in root.select(selector)).strip()


def _first_text(root: Tag, selectors: Tuple[str, ...]) -> str:
    for selector in selectors:
        text = _joined_text(root, selector)
        if text:
            return text
    return ""


def _date_of(root: Tag, selector: str = "time") -> str:
    """Machine-readable datetime attribute if present, else the displayed text."""
    time_el = root.select_one(selector)
    if time_el is None:
        return ""
    return (time_el.get("datetime") or "").strip() or time_el.get_text().strip()


def _text_with_breaks(element: Optional[Tag]) -> str:
    """Element text with <br> turned into newlines."""
    if element is None:
        return ""
    element = copy.copy(element)
    for br in element.find_all("br"):
        br.replace_with("\n")
    return element.get_text().strip()


def _build_entry(version_label: str, date: str, notes: str) -> Optional[VersionEntry]:
    version = normalize_version(version_label)
    notes = notes.strip()
    if not version and not notes:
        return None
    return VersionEntry(version=version, date=date or None, notes=notes or None)


def extract_whats_new(soup: BeautifulSoup) -> List[VersionEntry]:
    """Current layout: a single 'What's New' section for the latest release."""
    section = soup.select_one("section.whats-new")
    if section is None:
        return []

    version_label = _joined_text(section, ".whats-new__latest__version")
    date = _date_of(section, "time[datetime]") or _date_of(section)
    notes = _text_with_breaks(section.select_one(".we-truncate[dir] p"))

    entry = _build_entry(version_label, date, notes)
    return [entry] if entry else []


def _extract_items(
    soup: BeautifulSoup,
    item_selector: str,
    version_selectors: Tuple[str, ...],
    notes_selectors: Tuple[str, ...],
) -> List[VersionEntry]:
    entries = []
    for item in soup.select(item_selector):
        entry = _build_entry(
            _first_text(item, version_selectors),
            _date_of(item),
            _first_text(item, notes_selectors),
        )
        if entry:
            entries.append(entry)
    return entries


def extract_version_history(soup: BeautifulSoup) -> List[VersionEntry]:
    """Older layout: a version history list, newest item first."""
    return _extract_items(soup, VERSION_HISTORY_ITEM, VERSION_HISTORY_VERSION, VERSION_HISTORY_NOTES)


def extract_loose_items(soup: BeautifulSoup) -> List[VersionEntry]:
    """Broad selectors for legacy release-note blocks."""
    return _extract_items(soup, LOOSE_ITEM, LOOSE_VERSION, LOOSE_NOTES)


def extract_meta_description(soup: BeautifulSoup) -> List[VersionEntry]:
    """Last resort: the page summary text, with no version or date."""
    for selector in ('meta[name="description"]', 'meta[property="og:description"]'):
        meta = soup.select_one(selector)
        content = (meta.get("content") or "").strip() if meta is not None else ""
        if content:
            return [VersionEntry(version=None, date=None, notes=content)]
    return []


STRATEGIES: List[Tuple[str, Strategy]] = [
    ("whats_new", extract_whats_new),
    ("version_history", extract_version_history),
    ("loose_items", extract_loose_items),
    ("meta_description", extract_meta_description),
]


def extract_history(
    markup: str,
    locale: Optional[str] = None,
    source_url: str = "",
    strategies: Optional[List[Tuple[str, Strategy]]] = None,
) -> ExtractionResult:
    """
    Run the strategy cascade over listing markup.

    Args:
        markup: Raw HTML of the listing page
        locale: Language the page was requested in
        source_url: URL the markup was fetched from
        strategies: Ranked strategies to try, defaults to STRATEGIES

    Returns:
        ExtractionResult with the entries of the first strategy that found any,
        or no entries if none did
    """
    soup = BeautifulSoup(markup or "", "html.parser")

    for name, strategy in strategies or STRATEGIES:
        entries = strategy(soup)
        if entries:
            logger.info(
                "Extracted version history",
                strategy=name,
                entries=len(entries),
                source_url=source_url,
            )
            return ExtractionResult(
                source_url=source_url,
                entries=entries,
                strategy=name,
                locale=locale,
            )
        logger.debug("Extraction strategy found nothing", strategy=name, source_url=source_url)

    logger.warning("No version information found on page", source_url=source_url)
    return ExtractionResult(source_url=source_url, entries=[], locale=locale)
