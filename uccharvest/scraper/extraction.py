"""Generic, data-driven extraction of filing rows from result markup.

Each portal contributes an :class:`ExtractionProfile` (ordered candidate
selectors and column indices per logical field); one routine turns result
HTML into raw filing dicts for :func:`validation.validate_filings`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag

from .utils import collapse_whitespace

FIELDS: Tuple[str, ...] = (
    "filing_number",
    "debtor_name",
    "secured_party",
    "filing_date",
    "collateral",
    "status",
    "filing_type",
)

_DIGIT_RE = re.compile(r"\d")


def _default_columns() -> Dict[str, Tuple[int, ...]]:
    return {
        "filing_number": (0,),
        "filing_date": (1,),
        "debtor_name": (2,),
        "secured_party": (3,),
        "status": (4, -1),
    }


def _default_class_hints() -> Dict[str, Tuple[str, ...]]:
    return {
        "filing_number": ("[class*='filing']", "[class*='number']"),
        "debtor_name": ("[class*='debtor']", "[class*='name']"),
        "secured_party": ("[class*='secured']", "[class*='party']", "[class*='creditor']"),
        "filing_date": ("[class*='date']", "[class*='filed']"),
        "collateral": ("[class*='collateral']",),
        "status": ("[class*='status']",),
        "filing_type": ("[class*='type']",),
    }


@dataclass(frozen=True)
class ExtractionProfile:
    """Selector and column hints for one portal's result listing."""

    row_selectors: Tuple[str, ...] = (
        "table.results tbody tr",
        "table.search-results tbody tr",
        "table.ucc-results tbody tr",
        "div.result-item",
        "div.filing-item",
    )
    # Fall back to the first table with more than one row.
    table_fallback: bool = True
    min_cells: int = 3
    columns: Dict[str, Tuple[int, ...]] = field(default_factory=_default_columns)
    class_hints: Dict[str, Tuple[str, ...]] = field(default_factory=_default_class_hints)
    # First cell without digits while the second has them => name/number swapped.
    detect_swapped_columns: bool = True
    no_results_markers: Tuple[str, ...] = (
        "no records found",
        "no results",
        "0 results",
        "no filings found",
        "no matches",
    )


@dataclass
class ExtractionResult:
    records: List[Dict[str, str]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    rows_seen: int = 0


DEFAULT_EXTRACTION_PROFILE = ExtractionProfile()


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html5lib")


def page_text(html: str) -> str:
    """Return the lower-cased visible text of ``html``."""

    soup = parse_html(html)
    for node in soup(["script", "style", "noscript"]):
        node.decompose()
    return collapse_whitespace(soup.get_text(" ")).lower()


def contains_any(text: str, markers: Iterable[str]) -> bool:
    """True when any marker appears in ``text`` as whole words.

    "0 results" does not match inside "500 results".
    """

    return any(re.search(rf"(?<!\w){re.escape(marker)}(?!\w)", text) for marker in markers)


def has_no_results_message(html: str, profile: ExtractionProfile = DEFAULT_EXTRACTION_PROFILE) -> bool:
    return contains_any(page_text(html), profile.no_results_markers)


def find_result_rows(
    soup: BeautifulSoup, profile: ExtractionProfile, *, fallback: Optional[bool] = None
) -> List[Tag]:
    for selector in profile.row_selectors:
        rows = soup.select(selector)
        if rows:
            return rows

    use_fallback = profile.table_fallback if fallback is None else fallback
    if use_fallback:
        for table in soup.find_all("table"):
            rows = table.find_all("tr")
            if len(rows) > 1:
                return rows
    return []


def has_result_rows(
    html: str,
    profile: ExtractionProfile = DEFAULT_EXTRACTION_PROFILE,
    *,
    fallback: Optional[bool] = None,
) -> bool:
    soup = parse_html(html)
    return any(not row.find("th") for row in find_result_rows(soup, profile, fallback=fallback))


def _cell_text(cells: List[Tag], indices: Iterable[int]) -> str:
    for idx in indices:
        try:
            text = collapse_whitespace(cells[idx].get_text(" "))
        except IndexError:
            continue
        if text:
            return text
    return ""


def _extract_table_row(cells: List[Tag], profile: ExtractionProfile) -> Dict[str, str]:
    record = {name: _cell_text(cells, profile.columns.get(name, ())) for name in FIELDS}

    if (
        profile.detect_swapped_columns
        and record["filing_number"]
        and not _DIGIT_RE.search(record["filing_number"])
        and len(cells) > 1
        and _DIGIT_RE.search(cells[1].get_text(" "))
    ):
        record.update(
            debtor_name=_cell_text(cells, (0,)),
            filing_number=_cell_text(cells, (1,)),
            filing_date=_cell_text(cells, (2,)),
            secured_party=_cell_text(cells, (3,)),
        )

    if not record["filing_type"]:
        record["filing_type"] = record["filing_number"]
    return record


def _extract_block_row(row: Tag, profile: ExtractionProfile) -> Dict[str, str]:
    record: Dict[str, str] = {}
    for name in FIELDS:
        value = ""
        for selector in profile.class_hints.get(name, ()):
            node = row.select_one(selector)
            if node is not None:
                value = collapse_whitespace(node.get_text(" "))
                if value:
                    break
        record[name] = value

    if not record["filing_type"]:
        record["filing_type"] = record["filing_number"]
    return record


def extract_row(row: Tag, profile: ExtractionProfile) -> Optional[Dict[str, str]]:
    """Return a raw record for ``row`` or ``None`` for header/empty rows."""

    if row.find("th"):
        return None

    cells = row.find_all("td")
    if len(cells) >= profile.min_cells:
        record = _extract_table_row(cells, profile)
    elif row.get("class"):
        record = _extract_block_row(row, profile)
    else:
        return None

    if not any(value for key, value in record.items() if key != "filing_type"):
        return None
    return record


def extract_filings(html: str, profile: ExtractionProfile = DEFAULT_EXTRACTION_PROFILE) -> ExtractionResult:
    """Extract raw filing records from a rendered result page."""

    soup = parse_html(html)
    result = ExtractionResult()
    rows = find_result_rows(soup, profile)
    result.rows_seen = len(rows)

    for index, row in enumerate(rows):
        try:
            record = extract_row(row, profile)
        except Exception as exc:  # noqa: BLE001
            result.errors.append(f"Error parsing element {index}: {exc}")
            continue
        if record is not None:
            result.records.append(record)

    return result


__all__ = [
    "DEFAULT_EXTRACTION_PROFILE",
    "ExtractionProfile",
    "ExtractionResult",
    "FIELDS",
    "contains_any",
    "extract_filings",
    "extract_row",
    "find_result_rows",
    "has_no_results_message",
    "has_result_rows",
    "page_text",
    "parse_html",
]
