"""Validation and normalisation of raw extracted filing records.

Raw records come from DOM extraction or API payloads and may use either
snake_case or camelCase keys. Only a record with neither a filing number nor
a debtor name is dropped; unrecognised status or type text falls back to
``active`` / ``UCC-1``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Union

from .models import FilingStatus, FilingType, UCCFiling
from .utils import collapse_whitespace

RawFiling = Union[Mapping[str, Any], UCCFiling]

_FIELD_ALIASES = {
    "filing_number": ("filing_number", "filingNumber", "file_number", "id"),
    "debtor_name": ("debtor_name", "debtorName", "debtor"),
    "secured_party": ("secured_party", "securedParty", "creditor"),
    "filing_date": ("filing_date", "filingDate", "date_filed"),
    "collateral": ("collateral", "collateral_description"),
    "status": ("status",),
    "filing_type": ("filing_type", "filingType", "type"),
}

_STATUS_KEYWORDS = (
    (FilingStatus.ACTIVE, ("active", "filed")),
    (FilingStatus.TERMINATED, ("terminated", "discharged")),
    (FilingStatus.LAPSED, ("lapsed", "expired")),
)

_UCC3_MARKERS = ("ucc-3", "ucc3", "ucc 3", "amendment", "continuation", "assignment", "termination")

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%y", "%m/%d/%Y", "%m-%d-%Y", "%B %d, %Y", "%b %d, %Y", "%d %B %Y")
_ISO_PREFIX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[T ]")


@dataclass
class ValidationOutcome:
    validated_filings: List[UCCFiling] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)


def normalize_status(raw: Any) -> FilingStatus:
    if isinstance(raw, FilingStatus):
        return raw
    text = collapse_whitespace(raw).lower()
    for status, keywords in _STATUS_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return status
    return FilingStatus.ACTIVE


def normalize_filing_type(raw: Any) -> FilingType:
    if isinstance(raw, FilingType):
        return raw
    text = collapse_whitespace(raw).lower()
    if any(marker in text for marker in _UCC3_MARKERS):
        return FilingType.UCC3
    return FilingType.UCC1


def normalize_filing_date(raw: Any) -> Optional[str]:
    """Return an ISO date, ``""`` for blank input, or ``None`` when unparseable."""

    text = collapse_whitespace(raw)
    if not text:
        return ""

    match = _ISO_PREFIX_RE.match(text)
    if match:
        text = match.group(1)

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def _get_field(raw: RawFiling, name: str) -> Any:
    if isinstance(raw, UCCFiling):
        return getattr(raw, name)
    for key in _FIELD_ALIASES[name]:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def validate_filings(
    raw_filings: Iterable[RawFiling],
    prior_errors: Optional[Sequence[str]] = None,
) -> ValidationOutcome:
    """Validate and normalise ``raw_filings``, preserving their order.

    ``prior_errors`` (e.g. DOM extraction failures) are copied to the front
    of ``validation_errors`` unchanged.
    """

    outcome = ValidationOutcome(validation_errors=list(prior_errors or []))

    for index, raw in enumerate(raw_filings, start=1):
        filing_number = collapse_whitespace(_get_field(raw, "filing_number"))
        debtor_name = collapse_whitespace(_get_field(raw, "debtor_name"))

        if not filing_number and not debtor_name:
            outcome.validation_errors.append(
                f"Filing {index} dropped: missing both filing number and debtor name"
            )
            continue

        raw_date = _get_field(raw, "filing_date")
        filing_date = normalize_filing_date(raw_date)
        if filing_date is None:
            outcome.validation_errors.append(
                f"Filing {index}: unparseable filing date {collapse_whitespace(raw_date)!r}"
            )
            filing_date = ""

        outcome.validated_filings.append(
            UCCFiling(
                filing_number=filing_number,
                debtor_name=debtor_name,
                secured_party=collapse_whitespace(_get_field(raw, "secured_party")),
                filing_date=filing_date,
                collateral=collapse_whitespace(_get_field(raw, "collateral")),
                status=normalize_status(_get_field(raw, "status")),
                filing_type=normalize_filing_type(_get_field(raw, "filing_type")),
            )
        )

    return outcome


__all__ = [
    "RawFiling",
    "ValidationOutcome",
    "normalize_filing_date",
    "normalize_filing_type",
    "normalize_status",
    "validate_filings",
]
