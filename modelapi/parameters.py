# -*- coding: utf-8 -*-
#
# Filter and sort request argument parsing
#
#   ?name=foo                      => name = foo
#   ?id=1,2,3  ?id=[1,2,3]         => id IN (1, 2, 3)
#   ?price>=10  ?price=>=10        => price >= 10
#   ?price>10                      => price > 10
#   ?price!=10  ?price=<>10        => price != 10
#   ?category.name=toys            => filter on the name of the joined category
#   ?sort_by=price_desc,name       => ORDER BY price DESC, name
#   ?sort_by={"price": "desc"}     => ORDER BY price DESC
#
# Parsing never raises: invalid input is dropped (and logged)
#
from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple
import modelapi
from .config import get_config
from .metadata import AttributeMetadata, registry as default_registry

FILTER_OPERATORS = ("=", "!=", ">", "<", ">=", "<=", "IN")
ASC = "asc"
DESC = "desc"
DEFAULT = "default"

_TWO_CHAR_OPERATOR = re.compile(r"^(>=|<=|!=|<>)\s*\S")
_ONE_CHAR_OPERATOR = re.compile(r"^(>|<|=)\s*\S")
_OPERATOR_KEY_SUFFIXES = (">", "<", "!", "=")
# ?price>10 arrives as the key "price>10" without a value
_EMBEDDED_OPERATOR_KEY = re.compile(r"^([^<>!=]+?)\s*(>=|<=|!=|<>|>|<)\s*(\S.*)$")
_SORT_SUFFIX = re.compile(r"^(.*)[_ ](a|asc|ascending|d|desc|descending)$", re.IGNORECASE)
_DIRECTIONS = {"a": ASC, "asc": ASC, "ascending": ASC, "d": DESC, "desc": DESC, "descending": DESC}


@dataclass(frozen=True)
class FilterPredicate:
    attribute_key: str
    operator: str
    # tuple of distinct values for IN
    value: Any
    # association keys leading to the attribute, () for the root model
    path: Tuple[str, ...] = ()
    attribute: Optional[AttributeMetadata] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class SortSpec:
    attribute_key: str
    direction: str = ASC
    path: Tuple[str, ...] = ()
    attribute: Optional[AttributeMetadata] = field(default=None, compare=False, repr=False)


def parse_filter_operator(value: Any) -> Tuple[str, str]:
    """
    :param value: filter candidate, e.g. ">= 10"
    :return: (operator, value), "=" when there's no operator prefix
    """
    value = str(value).strip()
    match = _TWO_CHAR_OPERATOR.match(value)
    if match:
        operator = match.group(1)
        return ("!=" if operator == "<>" else operator), value[2:].strip()
    match = _ONE_CHAR_OPERATOR.match(value)
    if match:
        return match.group(1), value[1:].strip()
    return "=", value


def direction_token(value: Any) -> str:
    """
    :return: asc, desc or default
    """
    return _DIRECTIONS.get(str(value if value is not None else "").strip().lower(), DEFAULT)


def parse_sort_param(sort_by: Any) -> "dict[str, str]":
    """
    :param sort_by: sort_by request argument
    :return: ordered {attribute name: asc | desc | default}
    """
    if sort_by is None:
        return {}
    sort_by = str(sort_by).strip()
    if not sort_by:
        return {}
    if sort_by.startswith("{") or sort_by.startswith("["):
        return _parse_json_sort(sort_by)
    return _parse_simple_sort(sort_by)


def _parse_json_sort(sort_by: str) -> dict:
    try:
        sort_obj = json.loads(sort_by)
    except ValueError:
        modelapi.log.debug(f"Invalid JSON sort argument: {sort_by}")
        return {}
    if isinstance(sort_obj, list):
        sort_obj = {str(key): None for key in sort_obj}
    if not isinstance(sort_obj, dict):
        return {}
    result = {}
    for key, value in sort_obj.items():
        key = str(key).strip()
        if key:
            result[key] = direction_token(value)
    return result


def _parse_simple_sort(sort_by: str) -> dict:
    result = {}
    for token in sort_by.split(","):
        key = token.strip()
        order = DEFAULT
        match = _SORT_SUFFIX.match(key)
        if match:
            key = match.group(1).strip()
            order = _DIRECTIONS[match.group(2).lower()]
        if key:
            result[key] = order
    return result


def split_values(raw_value: Any, attr: AttributeMetadata) -> Optional[List[str]]:
    """
    :param raw_value: filter argument value
    :param attr: metadata of the filtered attribute
    :return: list of candidates for multi-value input, None for a single value
    """
    if isinstance(raw_value, Mapping) and "0" in raw_value:
        # indexed values: {"0": .., "1": ..}
        array = []
        index = 0
        while str(index) in raw_value:
            array.append(raw_value[str(index)])
            index += 1
        return _flatten_values(array, attr)
    if isinstance(raw_value, (list, tuple)):
        # repeated query argument
        return _flatten_values(raw_value, attr)
    raw_value = str(raw_value).strip()
    if raw_value.startswith("[") and raw_value.endswith("]"):
        try:
            array = json.loads(raw_value)
        except ValueError:
            array = None
        if isinstance(array, list):
            return [value if isinstance(value, str) else json.dumps(value) for value in array]
    delimiter = attr.filter_delimiter
    if delimiter and delimiter in raw_value:
        return raw_value.split(delimiter)
    return None


def _flatten_values(values, attr: AttributeMetadata) -> List[str]:
    result = []
    for value in values:
        array = split_values(value, attr)
        if array is None:
            result.append(str(value))
        else:
            result.extend(array)
    return result


class ParameterParser:
    """
    Translates filter and sort arguments into FilterPredicate and SortSpec lists,
    attributes are resolved with the filter/sort metadata of the model
    """

    # dotted names are resolved one association deep
    max_depth = 1

    def __init__(self, ctx, registry=default_registry) -> None:
        self.ctx = ctx
        self.registry = registry

    def transform(self, value: Any, attr: AttributeMetadata) -> Any:
        """
        Apply the attribute parse transform, the raw value is used when it fails
        """
        if attr.parse is None:
            return value
        try:
            return attr.parse(value)
        except Exception as exc:  # the transform is application code
            modelapi.log.warning(
                f'Error encountered parsing API input for attribute "{attr.ext_key}" ("{exc}"): "{str(value)[:1000]}" ... using raw value instead.'
            )
            return value

    def filters(self, params: Any, model_class: type = None, path: Tuple[str, ...] = ()) -> List[FilterPredicate]:
        """
        :param params: mapping or MultiDict of filter arguments
        :param model_class: filtered class, defaults to the context model class
        :return: list of FilterPredicate
        """
        model_class = model_class or self.ctx.model_class
        metadata = self.registry.filtered_ext(model_class, "filter", self.ctx)
        reserved = () if path else tuple(get_config("RESERVED_PARAMS") or ())
        predicates = []
        assoc_params = {}

        for key, value in _iter_params(params):
            key = str(key)
            if key in reserved:
                continue
            if value == "" or value is None:
                match = _EMBEDDED_OPERATOR_KEY.match(key)
                if match:
                    key, value = match.group(1), match.group(2) + match.group(3)
            if len(key) > 1 and key.endswith(_OPERATOR_KEY_SUFFIXES):
                # Effectively allows >= / <= / != / == in the query string
                suffix = key[-1]
                value = _prefix_operator(suffix, value)
                key = key[:-1].strip()
            if "." in key:
                assoc_name, _, rest = key.partition(".")
                attr = metadata.get(assoc_name.strip())
                if attr is None or not attr.is_association or len(path) >= self.max_depth:
                    modelapi.log.debug(f"Ignoring filter {key}")
                    continue
                assoc_params.setdefault(attr.key, (attr, []))[1].append((rest, value))
                continue
            attr = metadata.get(key.strip())
            if attr is None or attr.is_association:
                modelapi.log.debug(f"Ignoring filter {key}")
                continue
            predicates.extend(self.attribute_predicates(value, attr, path))

        for attr, assoc_values in assoc_params.values():
            predicates.extend(self.filters(assoc_values, attr.association, path + (attr.key,)))
        return predicates

    def attribute_predicates(self, raw_value: Any, attr: AttributeMetadata, path: Tuple[str, ...] = ()) -> List[FilterPredicate]:
        """
        :param raw_value: value of a filter argument
        :param attr: filtered attribute
        :return: the predicates for `raw_value`, all "=" candidates are merged in one IN predicate
        """
        array = split_values(raw_value, attr)
        if array is None:
            operator, value = parse_filter_operator(raw_value)
            return [FilterPredicate(attr.key, operator, self.transform(value, attr), path, attr)]

        predicates = []
        equals_values = []
        for value in array:
            value = value.strip()
            if not value:
                continue
            operator, value = parse_filter_operator(value)
            value = self.transform(value, attr)
            if operator == "=":
                if value not in equals_values:
                    equals_values.append(value)
            else:
                predicates.append(FilterPredicate(attr.key, operator, value, path, attr))
        if equals_values:
            predicates.append(FilterPredicate(attr.key, "IN", tuple(equals_values), path, attr))
        return predicates

    def sorts(self, sort_by: Any, model_class: type = None) -> List[SortSpec]:
        """
        :param sort_by: sort_by request argument (or the already parsed {name: direction} dict)
        :param model_class: sorted class, defaults to the context model class
        :return: ordered list of SortSpec
        """
        sort_params = sort_by if isinstance(sort_by, Mapping) else parse_sort_param(sort_by)
        return self._sorts(sort_params, model_class or self.ctx.model_class, ())

    def _sorts(self, sort_params: Mapping, model_class: type, path: Tuple[str, ...]) -> List[SortSpec]:
        metadata = self.registry.filtered_ext(model_class, "sort", self.ctx)
        result = []
        for key, order in sort_params.items():
            key = str(key).strip()
            if "." in key:
                assoc_name, _, rest = key.partition(".")
                attr = metadata.get(assoc_name.strip())
                if attr is None or not attr.is_association or len(path) >= self.max_depth:
                    modelapi.log.debug(f"Ignoring sort {key}")
                    continue
                result.extend(self._sorts({rest: order}, attr.association, path + (attr.key,)))
                continue
            attr = metadata.get(key)
            if attr is None or attr.is_association:
                modelapi.log.debug(f"Ignoring sort {key}")
                continue
            direction = direction_token(order)
            if direction == DEFAULT:
                direction = attr.default_sort_order if attr.default_sort_order in (ASC, DESC) else ASC
            result.append(SortSpec(attr.key, direction, path, attr))
        return result


def _iter_params(params: Any):
    """
    yield (key, value) pairs, repeated keys of a MultiDict yield a list value
    """
    if params is None:
        return
    if hasattr(params, "lists"):
        for key, values in params.lists():
            yield key, values if len(values) > 1 else values[0]
    elif isinstance(params, Mapping):
        yield from params.items()
    else:
        yield from params


def _prefix_operator(suffix: str, value: Any) -> Any:
    if suffix == "=":
        prefix = "="
    else:
        prefix = f"{suffix}="
    if isinstance(value, (list, tuple)):
        return [f"{prefix}{item}" for item in value]
    return f"{prefix}{value}"
