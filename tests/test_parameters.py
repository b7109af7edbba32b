from werkzeug.datastructures import MultiDict

import pytest
from modelapi.context import RequestContext
from modelapi.metadata import AttributeMetadata
from modelapi.parameters import FilterPredicate, ParameterParser, SortSpec, parse_filter_operator, parse_sort_param


@pytest.fixture
def parser(models) -> ParameterParser:
    return ParameterParser(RequestContext(model_class=models.Product))


def _simple(predicates):
    return [(p.attribute_key, p.operator, p.value, p.path) for p in predicates]


@pytest.mark.parametrize(
    "value, expected",
    [
        ("foo", ("=", "foo")),
        (">= 10", (">=", "10")),
        ("<=10", ("<=", "10")),
        ("!=3", ("!=", "3")),
        ("<>3", ("!=", "3")),
        (">5", (">", "5")),
        ("=bar", ("=", "bar")),
        (">", ("=", ">")),
        ("> ", ("=", ">")),
    ],
)
def test_parse_filter_operator(value: str, expected: tuple) -> None:
    assert parse_filter_operator(value) == expected


def test_equality_candidates_are_merged_into_one_distinct_in(parser: ParameterParser) -> None:
    assert _simple(parser.filters({"id": "1,2,2,3"})) == [("id", "IN", ("1", "2", "3"), ())]
    assert _simple(parser.filters({"id": "[1, 2, 2]"})) == [("id", "IN", ("1", "2"), ())]
    assert _simple(parser.filters(MultiDict([("id", "4"), ("id", "5")]))) == [("id", "IN", ("4", "5"), ())]
    assert _simple(parser.filters({"id": {"0": "7", "1": "8"}})) == [("id", "IN", ("7", "8"), ())]


def test_repeated_keys_are_split(parser: ParameterParser) -> None:
    params = MultiDict([("id", "1,2"), ("id", "3"), ("id", "[4, 1]")])
    assert _simple(parser.filters(params)) == [("id", "IN", ("1", "2", "3", "4"), ())]
    params = MultiDict([("price", ">5,<10"), ("price", "1")])
    assert _simple(parser.filters(params)) == [
        ("price", ">", "5", ()),
        ("price", "<", "10", ()),
        ("price", "IN", ("1",), ()),
    ]


def test_in_values_do_not_depend_on_the_input_order(parser: ParameterParser) -> None:
    (forward,) = parser.filters({"id": "1,2,3"})
    (backward,) = parser.filters({"id": "3,2,1,3"})
    assert forward.operator == backward.operator == "IN"
    assert set(forward.value) == set(backward.value) == {"1", "2", "3"}
    assert len(backward.value) == 3


def test_mixed_candidates(parser: ParameterParser) -> None:
    assert _simple(parser.filters({"price": "1,>5,<10"})) == [
        ("price", ">", "5", ()),
        ("price", "<", "10", ()),
        ("price", "IN", ("1",), ()),
    ]


def test_operator_key_suffix(parser: ParameterParser) -> None:
    # ?price>=10 is parsed as {"price>": "10"}
    assert _simple(parser.filters({"price>": "10"})) == [("price", ">=", "10", ())]
    assert _simple(parser.filters({"price<": "10"})) == [("price", "<=", "10", ())]
    assert _simple(parser.filters({"price!": "10"})) == [("price", "!=", "10", ())]
    assert _simple(parser.filters({"price": ">=10"})) == [("price", ">=", "10", ())]


def test_operator_inside_key(parser: ParameterParser) -> None:
    # ?price>10 is parsed as {"price>10": ""}
    assert _simple(parser.filters(MultiDict([("price>10", "")]))) == [("price", ">", "10", ())]
    assert _simple(parser.filters({"price<10": ""})) == [("price", "<", "10", ())]
    assert _simple(parser.filters({"price<>10": ""})) == [("price", "!=", "10", ())]
    assert _simple(parser.filters({"category.id>1": ""})) == [("id", ">", "1", ("category",))]
    assert parser.filters({"price": ""}) == [FilterPredicate("price", "=", "")]


def test_external_names_reserved_and_unknown_params(parser: ParameterParser) -> None:
    params = {"title": "ball", "sort_by": "price", "page": "2", "admin": "1", "access_token": "x", "nope": "1", "secret": "x"}
    assert _simple(parser.filters(params)) == [("name", "=", "ball", ())]


def test_non_filterable_attribute_is_ignored(parser: ParameterParser) -> None:
    assert parser.filters({"internal_note": "x"}) == []


def test_parse_transform_is_applied(parser: ParameterParser) -> None:
    assert _simple(parser.filters({"code": "ab,cd"})) == [("code", "IN", ("AB", "CD"), ())]


def test_failing_transform_uses_raw_value(parser: ParameterParser) -> None:
    attr = AttributeMetadata(key="size", ext_key="size", parse=int)
    predicates = parser.attribute_predicates("abc", attr)
    assert predicates == [FilterPredicate("size", "=", "abc")]
    assert parser.attribute_predicates("5", attr) == [FilterPredicate("size", "=", 5)]


def test_association_filters(parser: ParameterParser) -> None:
    predicates = parser.filters({"category.name": "toys,tools", "category.id>": "1"})
    assert sorted(_simple(predicates)) == [
        ("id", ">=", "1", ("category",)),
        ("name", "IN", ("toys", "tools"), ("category",)),
    ]


def test_association_depth_is_limited(parser: ParameterParser) -> None:
    assert parser.filters({"category.products.name": "x", "name.foo": "y"}) == []


def test_sort_forms_are_equivalent(parser: ParameterParser) -> None:
    expected = [SortSpec("price", "desc")]
    assert parser.sorts("price_desc") == expected
    assert parser.sorts("price desc") == expected
    assert parser.sorts("price_D") == expected
    assert parser.sorts('{"price": "desc"}') == expected


def test_sort_default_direction(parser: ParameterParser) -> None:
    # price is declared with a descending default sort order
    assert parser.sorts("price,title") == [SortSpec("price", "desc"), SortSpec("name", "asc")]
    assert parser.sorts('["price"]') == [SortSpec("price", "desc")]
    assert parser.sorts('{"title": "sideways"}') == [SortSpec("name", "asc")]


def test_sort_on_association_and_api_attr(parser: ParameterParser) -> None:
    assert parser.sorts("category.name_asc,label_d") == [SortSpec("name", "asc", ("category",)), SortSpec("label", "desc")]


def test_invalid_sorts_are_dropped(parser: ParameterParser) -> None:
    assert parser.sorts('{"price": ') == []
    assert parser.sorts("") == []
    assert parser.sorts(None) == []
    assert parser.sorts("nope_desc,category.nope") == []


def test_parse_sort_param() -> None:
    assert parse_sort_param("a_asc, b_descending ,c") == {"a": "asc", "b": "desc", "c": "default"}
    assert parse_sort_param("[1, 2") == {}
