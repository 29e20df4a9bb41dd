"""Typed records shared by every scraper implementation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .utils import now_iso


class FilingStatus(str, Enum):
    ACTIVE = "active"
    TERMINATED = "terminated"
    LAPSED = "lapsed"


class FilingType(str, Enum):
    UCC1 = "UCC-1"
    UCC3 = "UCC-3"


class PaginationType(str, Enum):
    NUMBERED = "numbered"
    NEXT_PREV = "next-prev"
    LOAD_MORE = "load-more"
    INFINITE_SCROLL = "infinite-scroll"
    URL_PARAM = "url-param"
    NONE = "none"


@dataclass(frozen=True)
class UCCFiling:
    filing_number: str
    debtor_name: str
    secured_party: str = ""
    filing_date: str = ""
    collateral: str = ""
    status: FilingStatus = FilingStatus.ACTIVE
    filing_type: FilingType = FilingType.UCC1

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        payload["filing_type"] = self.filing_type.value
        return payload


@dataclass(frozen=True)
class ScraperConfig:
    """Per-portal knobs; immutable for the lifetime of a scraper instance."""

    state: str
    base_url: str
    rate_limit_per_minute: float
    timeout_ms: int
    retry_attempts: int = 2


@dataclass
class ScraperResult:
    success: bool
    filings: List[UCCFiling] = field(default_factory=list)
    error: Optional[str] = None
    search_url: Optional[str] = None
    timestamp: str = field(default_factory=now_iso)
    retry_count: Optional[int] = None
    parsing_errors: Optional[List[str]] = None

    def __post_init__(self) -> None:
        if not self.success:
            self.filings = []

    @classmethod
    def failure(
        cls,
        error: str,
        *,
        search_url: Optional[str] = None,
        retry_count: Optional[int] = None,
    ) -> "ScraperResult":
        return cls(success=False, error=error, search_url=search_url, retry_count=retry_count)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "success": self.success,
            "filings": [filing.to_dict() for filing in self.filings],
            "timestamp": self.timestamp,
        }
        for key in ("error", "search_url", "retry_count", "parsing_errors"):
            value = getattr(self, key)
            if value is not None:
                payload[key] = value
        return payload


@dataclass
class PaginationState:
    current_page: int = 1
    has_next_page: bool = False
    pagination_type: PaginationType = PaginationType.NONE
    total_pages: Optional[int] = None


__all__ = [
    "FilingStatus",
    "FilingType",
    "PaginationState",
    "PaginationType",
    "ScraperConfig",
    "ScraperResult",
    "UCCFiling",
]
