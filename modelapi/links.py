# -*- coding: utf-8 -*-
"""
    links.py: hypermedia links of collection and object responses

A link is a Route: a flask endpoint with its url parameters, it's rendered with url_for
when the response is encoded.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional
from flask import current_app, has_app_context, has_request_context, request, url_for
from .metadata import singularize


@dataclass(frozen=True)
class Route:
    endpoint: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def with_params(self, **params: Any) -> "Route":
        merged = dict(self.params)
        merged.update(params)
        return Route(self.endpoint, merged)

    def url(self, **params: Any) -> str:
        """
        :param params: additional url parameters, e.g. the object id
        """
        merged = dict(self.params)
        merged.update(params)
        return url_for(self.endpoint, **merged)

    def resolves(self) -> bool:
        """
        :return: True if the endpoint is registered on the current app
        """
        return has_app_context() and self.endpoint in current_app.view_functions

    @classmethod
    def current(cls) -> Optional["Route"]:
        """
        :return: the route of the current request
        """
        if not has_request_context() or request.endpoint is None:
            return None
        return cls(request.endpoint, dict(request.view_args or {}))

    @classmethod
    def of(cls, route: Any) -> Optional["Route"]:
        if route is None or isinstance(route, Route):
            return route
        return cls(str(route))


def singular_endpoint(endpoint: str) -> str:
    """
    "api.products" => "api.product"
    """
    prefix, _, name = endpoint.rpartition(".")
    singular = singularize(name)
    return f"{prefix}.{singular}" if prefix else singular


class LinkSet(dict):
    """
    Ordered relation name => Route (or url string) mapping
    """

    def urls(self, **params: Any) -> dict:
        """
        :return: relation name => url
        """
        result = {}
        for rel, link in self.items():
            if isinstance(link, Route):
                result[rel] = link.url(**params)
            elif link is not None:
                result[rel] = str(link)
        return result


class LinkAssembler:
    """
    Builds the links of a response from the current route and the context link overrides:
    - ctx.collection_route / ctx.object_route replace the current route as "self"
    - ctx.links are merged in and take precedence
    - common_links are added when they're not set otherwise
    """

    def __init__(self, ctx, common_links: Optional[Mapping[str, Any]] = None) -> None:
        self.ctx = ctx
        self.common_links = dict(common_links or {})

    def _merge(self, links: LinkSet) -> LinkSet:
        links.update(self.ctx.links or {})
        for rel, link in self.common_links.items():
            links.setdefault(rel, link)
        return links

    def collection_links(self, pagination_links: Optional[Mapping[str, Any]] = None, params: Optional[Mapping[str, Any]] = None) -> LinkSet:
        """
        :param pagination_links: next/prev/first/last links
        :param params: collection link parameters
        :return: LinkSet with "self", the pagination links and the caller links
        """
        route = Route.of(self.ctx.collection_route) or Route.current()
        if route is not None and params:
            route = route.with_params(**params)
        links = LinkSet(self=route)
        links.update(pagination_links or {})
        return self._merge(links)

    def collection_object_route(self, params: Optional[Mapping[str, Any]] = None) -> Optional[Route]:
        """
        The route of the objects in a collection: ctx.object_route, or the singular form of the
        collection route if the app has such a route, or ctx.default_object_route
        """
        object_route = self.ctx.object_route
        if not object_route:
            collection_route = Route.of(self.ctx.collection_route) or Route.current()
            if collection_route is not None:
                singular = singular_endpoint(collection_route.endpoint)
                if singular != collection_route.endpoint:
                    object_route = singular
        if isinstance(object_route, str) and not Route(object_route).resolves():
            object_route = None
        if not object_route:
            object_route = self.ctx.default_object_route
        object_route = Route.of(object_route)
        if object_route is not None and params:
            object_route = object_route.with_params(**params)
        return object_route

    def object_links(self, params: Optional[Mapping[str, Any]] = None) -> LinkSet:
        """
        :return: LinkSet with "self" and the caller links
        """
        route = Route.of(self.ctx.object_route) or Route.current()
        if route is not None and params:
            route = route.with_params(**params)
        return self._merge(LinkSet(self=route))

    def update_links(self) -> LinkSet:
        """
        :return: links of a create/update/destroy response
        """
        return self._merge(LinkSet(self=Route.of(self.ctx.object_route) or Route.current()))

    def updated_object_links(self) -> LinkSet:
        """
        :return: links of the object in a create/update/destroy response
        """
        return LinkSet(self=Route.of(self.ctx.object_route) or Route.current())
