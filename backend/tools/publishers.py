"""
Publisher search - outreach API client with mock fallback.

Queries the outreach API when OUTREACH_API_URL is configured and falls back
to a fixed mock catalogue when it is unset or the call fails. The full
result set goes straight to the UI; only a one-line summary goes back to
the model.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from config import runtime_config
from errors.exceptions import ExternalServiceError, NotFoundError
from tools.schemas import BrowsePublishersArgs

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 8

MOCK_TAG = "[MOCK DATA]"
LIVE_TAG = "[LIVE API]"


@dataclass
class PublisherSearchResult:
    publishers: List[Dict[str, Any]]
    filters: Dict[str, Any]
    summary: str
    used_fallback: bool = False
    totalCount: int = field(init=False)

    def __post_init__(self):
        self.totalCount = len(self.publishers)

    def ui_payload(self) -> Dict[str, Any]:
        return {"publishers": self.publishers, "totalCount": self.totalCount, "filters": self.filters}

    def model_payload(self) -> Dict[str, Any]:
        return {"summary": self.summary, "count": self.totalCount, "message": "Full results sent to user interface"}


def spam_level(score: float) -> str:
    if score < 5:
        return "Low"
    if score < 15:
        return "Medium"
    return "High"


def transform_publisher(item: Dict[str, Any]) -> Dict[str, Any]:
    """Normalize one outreach API row into the publisher shape the UI renders."""
    spam_score = item.get("spamScore") or 0
    pricing = item.get("pricing") or {}
    base_price = item.get("sellingPrice") or item.get("price") or pricing.get("base") or 0
    niche = item.get("niche")

    return {
        "id": item.get("id") or item.get("website"),
        "website": item.get("website"),
        "websiteName": item.get("websiteName") or item.get("website"),
        "rating": item.get("rating") or 4,
        "doFollow": item["doFollow"] if item.get("doFollow") is not None else True,
        "niche": niche if isinstance(niche, list) else [niche or "General"],
        "type": item.get("type") or "Standard",
        "country": item.get("country") or "Unknown",
        "language": item.get("language") or "English",
        "authority": {
            "dr": item.get("domainRating") or item.get("dr") or 0,
            "da": item.get("domainAuthority") or item.get("da") or 0,
            "as": item.get("authorityScore") or item.get("as") or 0,
        },
        "spam": {"percentage": spam_score, "level": spam_level(spam_score)},
        "pricing": {
            "base": base_price,
            "withContent": item.get("withContentPrice") or pricing.get("withContent") or base_price * 1.5,
        },
        "trend": item.get("trend") or "Stable",
        "outboundLinks": item.get("outboundLinks") or item.get("obl") or 0,
    }


def build_filter_query(args: BrowsePublishersArgs) -> str:
    """Build the outreach API's SQL-like filter string (AND-joined)."""
    conditions: List[str] = []

    ranges = [
        ("domainAuthority", args.daMin, args.daMax),
        ("pageAuthority", args.paMin, args.paMax),
        ("domainRating", args.drMin, args.drMax),
        ("spamScore", args.spamMin, args.spamMax),
        ("sellingPrice", args.priceMin, args.priceMax),
        ("semrushTraffic", args.semrushOverallTrafficMin, None),
        ("semrushOrganicTraffic", args.semrushOrganicTrafficMin, None),
    ]
    for column, lo, hi in ranges:
        if lo is not None:
            conditions.append(f'"{column}" >= {_num(lo)}')
        if hi is not None:
            conditions.append(f'"{column}" <= {_num(hi)}')

    equals = [
        ("niche", args.niche),
        ("language", args.language),
        ("webCountry", args.country),
        ("linkAttribute", args.backlinkNature),
    ]
    for column, value in equals:
        if value:
            conditions.append(f"\"{column}\" = '{value}'")

    if args.availability is not None:
        conditions.append(f'"availability" = {str(args.availability).lower()}')
    if args.remarkIncludes:
        conditions.append(f"\"websiteRemark\" LIKE '%{args.remarkIncludes}%'")
    if args.searchQuery and args.searchQuery.strip():
        conditions.append(f"\"website\" LIKE '%{args.searchQuery.strip()}%'")

    return " AND ".join(conditions)


def _num(value: float):
    return int(value) if float(value).is_integer() else value


def build_request_body(args: BrowsePublishersArgs) -> Dict[str, Any]:
    body: Dict[str, Any] = {}
    filter_query = build_filter_query(args)
    if filter_query:
        body["filters"] = filter_query
    if args.limit:
        body["limit"] = args.limit
    if args.page:
        body["page"] = args.page
        body["offset"] = (args.page - 1) * (args.limit or DEFAULT_PAGE_SIZE)
    return body


def summarize_publishers(publishers: List[Dict[str, Any]], used_fallback: bool) -> str:
    source = MOCK_TAG if used_fallback else LIVE_TAG
    if not publishers:
        return f"{source} No publishers found matching the criteria"
    avg_dr = sum(p["authority"]["dr"] for p in publishers) / len(publishers)
    avg_price = sum(p["pricing"]["base"] for p in publishers) / len(publishers)
    return (
        f"{source} Found {len(publishers)} publishers. "
        f"Average DR: {avg_dr:.1f}, Average Price: ${avg_price:.2f}. Results displayed to user."
    )


async def fetch_live_publishers(
    args: BrowsePublishersArgs,
    url: str,
    timeout: float,
    client: Optional[httpx.AsyncClient] = None,
) -> List[Dict[str, Any]]:
    """POST the filter query to the outreach API and transform the rows.

    Raises:
        ExternalServiceError: on transport errors, non-2xx or unexpected body
    """
    body = build_request_body(args)
    headers = {"Content-Type": "application/json", "Accept": "application/json"}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=timeout) as owned:
                response = await owned.post(url, json=body or None, headers=headers)
        else:
            response = await client.post(url, json=body or None, headers=headers, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        raise ExternalServiceError(
            f"API responded with status: {e.response.status_code}",
            service="publishers",
            status_code=e.response.status_code,
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        raise ExternalServiceError("Outreach API request failed", details=str(e), service="publishers") from e

    if isinstance(data, dict):
        rows = data.get("sites") or data.get("publishers") or []
    else:
        rows = data
    if not isinstance(rows, list):
        raise ExternalServiceError("Unexpected outreach API response shape", service="publishers")

    return [transform_publisher(row) for row in rows if isinstance(row, dict)]


async def load_publishers(
    args: BrowsePublishersArgs,
    client: Optional[httpx.AsyncClient] = None,
) -> Tuple[List[Dict[str, Any]], bool]:
    """Return (publishers, used_fallback) from the live API or the mock catalogue."""
    url = runtime_config.outreach_api_url
    if not url:
        return mock_publishers(), True

    try:
        publishers = await fetch_live_publishers(args, url, float(runtime_config.outreach_timeout), client)
        return publishers, False
    except ExternalServiceError as e:
        logger.warning(f"Outreach API failed, using mock publishers: {e}")
        return mock_publishers(), True


async def browse_publishers(
    args: BrowsePublishersArgs,
    delay_seconds: float = 0.0,
    client: Optional[httpx.AsyncClient] = None,
) -> PublisherSearchResult:
    if delay_seconds > 0:
        await asyncio.sleep(delay_seconds)

    publishers, used_fallback = await load_publishers(args, client)
    return PublisherSearchResult(
        publishers=publishers,
        filters=args.active_filters(),
        summary=summarize_publishers(publishers, used_fallback),
        used_fallback=used_fallback,
    )


async def get_publisher_details(publisher_id: str, client: Optional[httpx.AsyncClient] = None) -> Dict[str, Any]:
    """Look up one publisher by id or website.

    Raises:
        NotFoundError: no publisher matches
    """
    lookup = BrowsePublishersArgs(searchQuery=publisher_id)
    publishers, _ = await load_publishers(lookup, client)
    for publisher in publishers:
        if publisher_id in (str(publisher.get("id")), publisher.get("website")):
            return publisher

    raise NotFoundError(
        f"Publisher not found: {publisher_id}",
        details="No publisher with that id or website exists in the catalogue.",
        resource_type="publisher",
        resource_id=publisher_id,
    )


def _mock(
    id_: str,
    website: str,
    name: str,
    rating: int,
    type_: str,
    country: str,
    niche: List[str],
    authority: Tuple[int, int, int],
    spam: Tuple[int, str],
    pricing: Tuple[int, int],
    trend: str,
    outbound: int,
) -> Dict[str, Any]:
    dr, da, as_ = authority
    return {
        "id": id_,
        "website": website,
        "websiteName": name,
        "rating": rating,
        "doFollow": True,
        "niche": niche,
        "type": type_,
        "country": country,
        "language": "English",
        "authority": {"dr": dr, "da": da, "as": as_},
        "spam": {"percentage": spam[0], "level": spam[1]},
        "pricing": {"base": pricing[0], "withContent": pricing[1]},
        "trend": trend,
        "outboundLinks": outbound,
    }


def mock_publishers() -> List[Dict[str, Any]]:
    """Fixed catalogue used when the outreach API is unavailable."""
    us = "United States"
    return [
        _mock("1", "techcrunch.com", "TechCrunch", 5, "Premium", us,
              ["Technology", "Business"], (92, 95, 78), (2, "Low"), (800, 1200), "Rising", 150),
        _mock("2", "wired.com", "Wired", 5, "Premium", us,
              ["Technology", "Science"], (88, 90, 75), (3, "Low"), (650, 950), "Stable", 200),
        _mock("3", "techradar.com", "TechRadar", 4, "Standard", "United Kingdom",
              ["Technology", "Reviews"], (85, 87, 72), (5, "Low"), (450, 700), "Rising", 180),
        _mock("4", "forbes.com/technology", "Forbes Tech", 5, "Premium", us,
              ["Technology", "Business", "Finance"], (94, 96, 82), (1, "Low"), (1200, 1800), "Stable", 120),
        _mock("5", "theverge.com", "The Verge", 5, "Premium", us,
              ["Technology", "Science", "Entertainment"], (90, 92, 79), (2, "Low"), (750, 1100), "Rising", 165),
        _mock("6", "mashable.com", "Mashable", 4, "Standard", us,
              ["Technology", "Social Media", "Entertainment"], (82, 85, 68), (8, "Medium"), (500, 800), "Falling", 220),
        _mock("7", "engadget.com", "Engadget", 4, "Standard", us,
              ["Technology", "Gadgets"], (84, 86, 70), (6, "Low"), (550, 850), "Stable", 175),
        _mock("8", "arstechnica.com", "Ars Technica", 5, "Premium", us,
              ["Technology", "Science"], (86, 88, 74), (4, "Low"), (600, 900), "Rising", 190),
    ]
