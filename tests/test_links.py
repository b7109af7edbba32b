from modelapi.context import RequestContext
from modelapi.links import LinkAssembler, LinkSet, Route, singular_endpoint


def test_singular_endpoint() -> None:
    assert singular_endpoint("api.products") == "api.product"
    assert singular_endpoint("categories") == "category"
    assert singular_endpoint("product") == "product"


def test_route_url(app) -> None:
    with app.test_request_context("/products/"):
        assert Route("product").url(id=3) == "/products/3/"
        assert Route("products", {"page": 2}).with_params(title="kite").url() == "/products/?page=2&title=kite"
        assert Route("product").resolves()
        assert not Route("nope").resolves()


def test_collection_links(app) -> None:
    ctx = RequestContext(links={"help": "https://example.com/help", "first": "overridden"})
    assembler = LinkAssembler(ctx, common_links={"help": "ignored", "docs": "/docs"})
    with app.test_request_context("/products/?title=kite"):
        links = assembler.collection_links({"first": Route("products", {"page": 1})}, {"title": "kite"})
        assert list(links) == ["self", "first", "help", "docs"]
        assert links.urls() == {
            "self": "/products/?title=kite",
            "first": "overridden",
            "help": "https://example.com/help",
            "docs": "/docs",
        }


def test_collection_object_route(app) -> None:
    with app.test_request_context("/products/"):
        route = LinkAssembler(RequestContext()).collection_object_route({"sort_by": "price"})
        assert route == Route("product", {"sort_by": "price"})

        route = LinkAssembler(RequestContext(object_route="widget")).collection_object_route()
        assert route == Route("widget")

        ctx = RequestContext(object_route="nope", default_object_route="record")
        assert LinkAssembler(ctx).collection_object_route() == Route("record")

    with app.test_request_context("/"):
        assert LinkAssembler(RequestContext()).collection_object_route() is None


def test_object_and_update_links(app) -> None:
    with app.test_request_context("/products/3/"):
        assembler = LinkAssembler(RequestContext(links={"parent": "/products/"}))
        assert assembler.object_links().urls() == {"self": "/products/3/", "parent": "/products/"}
        assert assembler.update_links().urls() == {"self": "/products/3/", "parent": "/products/"}
        assert assembler.updated_object_links().urls() == {"self": "/products/3/"}


def test_link_set_skips_missing_links() -> None:
    assert LinkSet(self=None, docs="/docs").urls() == {"docs": "/docs"}
