# -*- coding: utf-8 -*-
#
# Collection pagination
#
# The total count is computed once on the unpaginated query, the requested page is
# clamped to [1, page_count]. The query is only limited when the collection is larger than one page.
#
import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple
import modelapi
from .config import get_int_config
from .links import LinkSet, Route

COLLECTION_LINK_EXCLUDES = ("page",)
OBJECT_LINK_EXCLUDES = ("page", "page_size")


@dataclass(frozen=True)
class PaginationState:
    total_count: int
    page_size: int
    page: int
    page_count: int
    offset: int
    # link parameters: the request arguments without the pagination arguments
    collection_link_params: Mapping[str, Any] = field(default_factory=dict)
    object_link_params: Mapping[str, Any] = field(default_factory=dict)

    @property
    def paginated(self) -> bool:
        return self.total_count > self.page_size


def _positive_int(value: Any) -> Optional[int]:
    try:
        value = int(value)
    except (TypeError, ValueError):
        return None
    return value if value >= 1 else None


def page_bounds(total_count: int, page: Any = None, page_size: Any = None) -> Tuple[int, int, int, int]:
    """
    :param total_count: number of rows in the collection
    :param page: requested page, 1-based
    :param page_size: requested page size
    :return: (page, page_size, page_count, offset)
    """
    default_size = get_int_config("DEFAULT_PAGE_SIZE", 100)
    max_size = get_int_config("MAX_PAGE_SIZE", 100000)
    page_size = min(_positive_int(page_size) or default_size, max_size)
    page_count = max(math.ceil(total_count / page_size), 1)
    page = min(_positive_int(page) or 1, page_count)
    offset = (page - 1) * page_size
    return page, page_size, page_count, offset


def pagination_links(route: Optional[Route], page: int, page_count: int) -> LinkSet:
    """
    :return: next, prev, first and last links, next is omitted on the last page and prev on the first
    """
    links = LinkSet()
    if route is None:
        return links
    if page < page_count:
        links["next"] = route.with_params(page=page + 1)
    if page > 1:
        links["prev"] = route.with_params(page=page - 1)
    links["first"] = route.with_params(page=1)
    links["last"] = route.with_params(page=page_count)
    return links


def paginate(query, page: Any = None, page_size: Any = None, route: Optional[Route] = None, params: Optional[Mapping[str, Any]] = None):
    """
    :param query: sqla query, filtered and sorted
    :param page: requested page
    :param page_size: requested page size
    :param route: collection route the navigation links point to
    :param params: request arguments to keep in the links
    :return: (paginated query, PaginationState, navigation LinkSet)
    """
    total_count = query.count()
    page, page_size, page_count, offset = page_bounds(total_count, page, page_size)

    params = dict(params or {})
    collection_link_params = {k: v for k, v in params.items() if k not in COLLECTION_LINK_EXCLUDES}
    object_link_params = {k: v for k, v in params.items() if k not in OBJECT_LINK_EXCLUDES}

    links = LinkSet()
    if total_count > page_size:
        collection_link_params["page"] = page
        if route is not None:
            route = route.with_params(**collection_link_params)
        links = pagination_links(route, page, page_count)
        query = query.limit(page_size).offset(offset)
        modelapi.log.debug(f"Page {page}/{page_count} (size {page_size}, count {total_count})")

    state = PaginationState(
        total_count=total_count,
        page_size=page_size,
        page=page,
        page_count=page_count,
        offset=offset,
        collection_link_params=collection_link_params,
        object_link_params=object_link_params,
    )
    return query, state, links
