# pager.py
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

PROGRESS_EVERY = 1000


def with_page_token_field(fields: Optional[str]) -> Optional[str]:
    """
    Makes sure a partial-response field mask still returns ``nextPageToken``.
    Without it a listing silently stops after the first page.
    """
    if not fields or "nextPageToken" in fields:
        return fields
    return f"nextPageToken,{fields}"


async def fetch_all(
    fetch_page: Callable[[Optional[str]], Awaitable[Optional[Dict[str, Any]]]],
    items_key: str,
    label: str = "",
) -> List[Any]:
    """
    Collects every page of a listing into one list, in server order.

    :param fetch_page: Coroutine function issuing one page request (with its own
                       retry loop) for the given page token, None for the first page.
    :param items_key: Response key holding the page items, e.g. "files".
    :param label: Shown in progress logs.
    :return: All items. Errors from any page propagate and nothing is returned.
    """
    items: List[Any] = []
    page_token = None
    pages = 0
    while True:
        response = await fetch_page(page_token) or {}
        pages += 1
        for item in response.get(items_key, []):
            items.append(item)
            if len(items) % PROGRESS_EVERY == 0:
                logging.info(f"working: fetched {len(items)} {items_key} for {label}")

        page_token = response.get("nextPageToken")
        if not page_token:
            break

    logging.info(f"done: fetched {len(items)} {items_key} in {pages} pages for {label}")
    return items
