# -*- coding: utf-8 -*-
"""
    metadata.py: per-model attribute metadata, built from the SQLAlchemy mapper

Every mapped column is an attribute, every relationship is an association attribute and
every `api_attr` property is an attribute without a backing column. Attribute declarations
are read from the column/relationship `info` dict or from attributes set on the column
object, e.g.

    name = DB.Column(DB.String, info={"ext_name": "title", "sortable": False})
    price = DB.Column(DB.Numeric)
    price.default_sort_order = "desc"

The capability flags (filterable, sortable, creatable, updatable) are either booleans or
callables of the RequestContext.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional
import inflect
import sqlalchemy
from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.orm.interfaces import MANYTOONE
import modelapi
from .api_attr import ATTRIBUTE_FLAGS, is_api_attr
from .model_config import ModelConfig, model_config_for
from .util import OnceCache, underscore

PURPOSES = ("filter", "sort", "create", "update")

_inflect = inflect.engine()


class Capability:
    """
    Capability flag: a constant or a predicate of the request context
    """

    def evaluate(self, ctx) -> bool:  # pragma: no cover
        raise NotImplementedError

    @staticmethod
    def of(value: Any, default: bool = True) -> "Capability":
        if isinstance(value, Capability):
            return value
        if value is None:
            return Constant(default)
        if callable(value):
            return Predicate(value)
        return Constant(bool(value))


@dataclass(frozen=True)
class Constant(Capability):
    value: bool

    def evaluate(self, ctx) -> bool:
        return self.value


@dataclass(frozen=True)
class Predicate(Capability):
    fn: Callable[[Any], bool]

    def evaluate(self, ctx) -> bool:
        return bool(self.fn(ctx))


ALWAYS = Constant(True)
NEVER = Constant(False)


@dataclass(frozen=True)
class AttributeMetadata:
    key: str
    ext_key: str
    filterable: Capability = ALWAYS
    sortable: Capability = ALWAYS
    creatable: Capability = ALWAYS
    updatable: Capability = ALWAYS
    default_sort_order: str = "asc"
    filter_delimiter: Optional[str] = ","
    parse: Optional[Callable] = None
    render: Optional[Callable] = None
    render_method: Optional[str] = None
    is_association: bool = False
    # related model class of an association, its metadata comes from the registry
    association: Optional[type] = None
    column: Any = None

    def capability(self, purpose: str) -> Capability:
        return {"filter": self.filterable, "sort": self.sortable, "create": self.creatable, "update": self.updatable}[purpose]

    def allows(self, purpose: str, ctx=None) -> bool:
        return self.capability(purpose).evaluate(ctx)


@dataclass(frozen=True)
class ModelMetadata:
    model_class: type
    attributes: Mapping[str, AttributeMetadata]
    options: ModelConfig = field(default_factory=ModelConfig)
    hooks: Mapping[str, Callable] = field(default_factory=dict)


def _declaration(obj: Any, name: str, default: Any = None) -> Any:
    info = getattr(obj, "info", None) or {}
    if name in info:
        return info[name]
    return getattr(obj, name, default)


def _declarations(obj: Any) -> dict:
    result = {}
    for name in ATTRIBUTE_FLAGS:
        value = _declaration(obj, name)
        if value is not None:
            result[name] = value
    return result


def _attribute(key: str, decl: dict, **defaults: Any) -> AttributeMetadata:
    """
    :param key: internal attribute name
    :param decl: declarations, see ATTRIBUTE_FLAGS
    :param defaults: default capabilities and the attribute type info
    """
    sort_order = str(decl.get("default_sort_order", "asc")).lower()
    if sort_order not in ("asc", "desc"):
        modelapi.log.warning(f'Invalid default sort order "{sort_order}" for {key}, using "asc"')
        sort_order = "asc"
    return AttributeMetadata(
        key=key,
        ext_key=str(decl.get("ext_name", key)),
        filterable=Capability.of(decl.get("filterable"), defaults.pop("filterable", True)),
        sortable=Capability.of(decl.get("sortable"), defaults.pop("sortable", True)),
        creatable=Capability.of(decl.get("creatable"), defaults.pop("creatable", True)),
        updatable=Capability.of(decl.get("updatable"), defaults.pop("updatable", True)),
        default_sort_order=sort_order,
        filter_delimiter=decl.get("filter_delimiter", ","),
        parse=decl.get("parse"),
        render=decl.get("render"),
        render_method=decl.get("render_method"),
        **defaults,
    )


def build_model_metadata(model_class: type) -> ModelMetadata:
    """
    Create the metadata of a mapped class
    :param model_class: SQLAlchemy mapped class
    :return: ModelMetadata
    """
    mapper = sqla_inspect(model_class)
    options = model_config_for(model_class)
    attributes = {}
    soft_delete_column = options.soft_delete_column

    for prop in mapper.column_attrs:
        if prop.key in options.exclude_attrs:
            continue
        column = prop.columns[0]
        decl = _declarations(column)
        if not decl.get("expose", True):
            continue
        writable = not column.primary_key or options.allow_client_generated_ids
        writable = writable and prop.key != soft_delete_column
        attributes[prop.key] = _attribute(prop.key, decl, creatable=writable, updatable=writable, column=column)

    for rel in mapper.relationships:
        if rel.key in options.exclude_attrs:
            continue
        decl = _declarations(rel)
        if not decl.get("expose", True):
            continue
        # associations can be filtered and sorted on, they're not written through the api
        attributes[rel.key] = _attribute(
            rel.key, decl, creatable=False, updatable=False, is_association=True, association=rel.mapper.class_
        )

    for key, descriptor in mapper.all_orm_descriptors.items():
        if not is_api_attr(descriptor) or key in options.exclude_attrs:
            continue
        decl = dict(descriptor.api_flags)
        if not decl.get("expose", True):
            continue
        writable = descriptor.fset is not None
        attributes[key] = _attribute(key, decl, creatable=writable, updatable=writable)

    modelapi.log.debug(f"Metadata for {model_class.__name__}: {list(attributes)}")
    return ModelMetadata(model_class=model_class, attributes=attributes, options=options, hooks=dict(options.hooks))


class AttributeMetadataRegistry:
    """
    Per-model metadata, built at first use and cached for the lifetime of the process
    """

    def __init__(self, builder: Callable[[type], ModelMetadata] = build_model_metadata) -> None:
        self._builder = builder
        self._models = OnceCache("model metadata")
        self._subtypes = OnceCache("subtypes")

    def get(self, model_class: type) -> ModelMetadata:
        return self._models.get(model_class, self._builder)

    def filtered(self, model_class: type, purpose: str, ctx=None) -> Dict[str, AttributeMetadata]:
        """
        :param model_class: mapped class
        :param purpose: one of filter, sort, create, update
        :param ctx: RequestContext the capability predicates are evaluated with
        :return: internal key => metadata of the attributes allowed for `purpose`
        """
        if purpose not in PURPOSES:
            raise ValueError(f"Invalid metadata purpose {purpose}")
        metadata = self.get(model_class)
        return {key: attr for key, attr in metadata.attributes.items() if attr.allows(purpose, ctx)}

    def filtered_ext(self, model_class: type, purpose: str, ctx=None) -> Dict[str, AttributeMetadata]:
        """
        Same as `filtered`, keyed by external and internal names
        """
        result = {}
        filtered = self.filtered(model_class, purpose, ctx)
        for attr in filtered.values():
            result[attr.ext_key] = attr
        for key, attr in filtered.items():
            result.setdefault(key, attr)
        return result

    def subtypes(self, model_class: type) -> Dict[str, type]:
        """
        :return: class name => subclass, for all the (indirect) mapped subclasses of `model_class`
        """
        return self._subtypes.get(model_class, _mapped_subclasses)


def _mapped_subclasses(model_class: type) -> Dict[str, type]:
    result = {}
    pending = list(model_class.__subclasses__())
    while pending:
        subclass = pending.pop(0)
        if subclass.__name__ not in result and sqla_inspect(subclass, raiseerr=False) is not None:
            result[subclass.__name__] = subclass
        pending.extend(subclass.__subclasses__())
    return result


def soft_delete_kind(model_class: type) -> tuple:
    """
    :param model_class: mapped class
    :return: (attribute name, "boolean" | "integer") of the soft delete marker or (None, None)
    """
    name = registry.get(model_class).options.soft_delete_column
    mapper = sqla_inspect(model_class)
    if not name or name not in mapper.column_attrs.keys():
        return None, None
    column_type = mapper.column_attrs[name].columns[0].type
    if isinstance(column_type, sqlalchemy.Boolean):
        return name, "boolean"
    if isinstance(column_type, (sqlalchemy.Integer, sqlalchemy.Numeric)):
        return name, "integer"
    return None, None


def is_to_one(relationship) -> bool:
    """
    belongs_to (many to one) or has_one (one to one) relationship
    """
    return relationship.direction is MANYTOONE or not relationship.uselist


def model_name(model_class: type) -> str:
    """
    :return: singular name used as root element, e.g. "product"
    """
    return underscore(model_class.__name__)


def collection_name(model_class: type) -> str:
    """
    :return: plural name used as collection root element, e.g. "products"
    """
    return _inflect.plural_noun(model_name(model_class)) or model_name(model_class)


def singularize(word: str) -> str:
    """
    :return: singular form of `word`, `word` itself if it's not a plural noun
    """
    return _inflect.singular_noun(word) or word


def find_class(obj_or_class: Any) -> Optional[type]:
    """
    :param obj_or_class: model instance, model class or query
    :return: mapped class
    """
    if inspect.isclass(obj_or_class):
        return obj_or_class
    descriptions = getattr(obj_or_class, "column_descriptions", None)
    if descriptions:
        return descriptions[0].get("entity")
    if obj_or_class is None:
        return None
    return type(obj_or_class)


registry = AttributeMetadataRegistry()
