# bundle_fetcher.py
"""Follow the 'next' links of a search Bundle and gather every page into one.

`aggregate()` does the work; `BundleFetcher` binds it to a `FhirClient` the way
a caller usually wants it:

    first = client.search("Patient", {"family:exact": "Melonseed"})
    result = BundleFetcher(client, first).fetch_all()

There is no page limit. The loop stops when the server leaves out the 'next'
link; wrap `fetch_next` if you need a bound.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from fhir.resources.R4B.bundle import Bundle, BundleEntry
from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

LINK_NEXT = "next"

FetchNext = Callable[[Bundle], Bundle]


class PageLoader(Protocol):
    def load_next(self, bundle: Bundle) -> Bundle: ...


class AggregateResult(BaseModel):
    """Every entry of a paged search, in page order.

    `count_mismatch` is set when the server's declared `total` does not match
    the number of entries that were actually collected.
    """

    model_config = ConfigDict(frozen=True)

    bundle: Bundle
    count_mismatch: bool = False

    @property
    def entries(self) -> list[BundleEntry]:
        return list(self.bundle.entry or [])

    @property
    def total(self) -> Optional[int]:
        return self.bundle.total


def next_link(bundle: Bundle) -> Optional[str]:
    """URL of the bundle's 'next' link, or None on the last page."""
    for link in bundle.link or []:
        if link.relation == LINK_NEXT:
            return link.url
    return None


def aggregate(first_page: Bundle, fetch_next: FetchNext) -> AggregateResult:
    """Load every page after *first_page* via *fetch_next* and merge the entries.

    Errors raised by *fetch_next* propagate unchanged; nothing collected so far
    is returned in that case.
    """
    if first_page is None:
        raise ValueError("first_page cannot be None")
    if fetch_next is None:
        raise ValueError("fetch_next cannot be None")

    aggregated = first_page.model_copy(deep=True)
    entries: list[BundleEntry] = list(first_page.entry or [])

    logger.debug(
        "Starting bundle search matched %s total resource(s) in the search and %d resource(s) "
        "are in this bundle.",
        first_page.total,
        len(entries),
    )

    current = first_page
    while next_link(current) is not None:
        current = fetch_next(current)
        page_entries = current.entry or []
        logger.debug(
            "Got the next bundle. This 'next' bundle had %d resource(s) in it.", len(page_entries)
        )
        entries.extend(page_entries)

    count_mismatch = False
    if aggregated.total is not None and aggregated.total != len(entries):
        count_mismatch = True
        logger.error(
            "Counts didn't match! Expected %d resource(s) but the bundle only had %d resource(s)!",
            aggregated.total,
            len(entries),
        )

    aggregated.entry = entries or None
    # Paging links point at the server's pages, not at this bundle.
    aggregated.link = None

    return AggregateResult(bundle=aggregated, count_mismatch=count_mismatch)


class BundleFetcher:
    """Gathers all pages of a search that started with *starting_bundle*."""

    def __init__(self, client: PageLoader, starting_bundle: Bundle) -> None:
        if client is None:
            raise ValueError("client cannot be None")
        if starting_bundle is None:
            raise ValueError("starting_bundle cannot be None")
        self.client = client
        self.starting_bundle = starting_bundle

    def fetch_all(self) -> AggregateResult:
        return aggregate(self.starting_bundle, self.client.load_next)
