"""
Offset pagination over subgraph collections.
"""
import time
from typing import Any, Callable, Dict, List, Optional

from colony_indexer.exceptions import PaginationError
from colony_indexer.services.graph_client import GraphClient
from colony_indexer.utils.logger import logger

PageFetcher = Callable[..., List[Any]]


def paginate(
    fetch: PageFetcher,
    page_size: int = 100,
    throttle_seconds: float = 0.5,
    sleep: Callable[[float], None] = time.sleep,
) -> List[Any]:
    """
    Call ``fetch(first=page_size, skip=n)`` until it returns an empty page.

    The empty page is the only stop condition: a short page does not end the
    walk. Exceptions from ``fetch`` propagate unchanged.

    Args:
        fetch: Page fetcher taking ``first`` and ``skip`` keyword arguments
        page_size: Items requested per page
        throttle_seconds: Pause between consecutive requests
        sleep: Sleep function (tests pass a no-op)

    Returns:
        All items, in page order
    """
    items: List[Any] = []
    calls = 0
    while True:
        if calls and throttle_seconds:
            sleep(throttle_seconds)
        page = fetch(first=page_size, skip=len(items))
        calls += 1
        if not page:
            break
        items.extend(page)
    logger.debug("[Paginator] Collected %d items in %d calls", len(items), calls)
    return items


def graph_page_fetcher(
    graph_client: GraphClient,
    document: str,
    collection: str,
    variables: Optional[Dict[str, Any]] = None,
    query_name: Optional[str] = None,
) -> PageFetcher:
    """
    Adapt a subgraph query to the ``fetch(first, skip)`` shape.

    A failed request raises ``PaginationError`` instead of looking like an
    empty page, so a transport hiccup can't silently truncate a stream.
    """
    label = query_name or collection

    def fetch(first: int, skip: int) -> List[Dict[str, Any]]:
        body = graph_client.query(document, {**(variables or {}), "first": first, "skip": skip})
        if body is None:
            raise PaginationError(f"{label} page at skip={skip} failed", query_name=label)
        if body.get("errors"):
            raise PaginationError(f"{label} page at skip={skip} returned errors", query_name=label)
        return list((body.get("data") or {}).get(collection) or [])

    return fetch
