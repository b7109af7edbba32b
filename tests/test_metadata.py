import dataclasses
import threading
import time

import pytest
from modelapi import DB, ModelAPI, api_attr
from modelapi.config import get_config
from modelapi.context import RequestContext
from modelapi.metadata import (
    AttributeMetadataRegistry,
    Capability,
    Constant,
    Predicate,
    build_model_metadata,
    collection_name,
    model_name,
)
from modelapi.model_config import model_config_for
from modelapi.mutation import MutationPipeline
from modelapi.persistence import Persistence
from modelapi.query import QueryBuilder, belongs_to_keys
from modelapi.util import OnceCache


class Gadget(DB.Model):
    __tablename__ = "gadgets"
    id = DB.Column(DB.Integer, primary_key=True)
    price_cents = DB.Column(DB.Integer, default=0)

    @api_attr
    def price(self):
        return (self.price_cents or 0) / 100

    @price.setter
    def price(self, value):
        self.price_cents = int(round(float(value) * 100))


class Archived:
    __api_options__ = {"soft_delete_column": "archived"}


class _Saved(Persistence):
    def save(self, obj) -> bool:
        return True

    def destroy(self, obj) -> bool:
        return True


def test_once_cache() -> None:
    calls = []

    def factory(key):
        calls.append(key)
        return key * 2

    cache = OnceCache("test")
    assert cache.get(2, factory) == 4
    assert cache.get(2, factory) == 4
    assert cache.get(3, factory) == 6
    assert calls == [2, 3]
    assert 2 in cache
    assert len(cache) == 2


def test_get_is_memoized(models) -> None:
    builds = []

    def build(model_class):
        builds.append(model_class)
        return build_model_metadata(model_class)

    registry = AttributeMetadataRegistry(build)
    first = registry.get(models.Product)
    assert registry.get(models.Product) is first
    assert builds == [models.Product]


def test_concurrent_first_lookups_build_once(models) -> None:
    builds = []
    results = []
    barrier = threading.Barrier(8)

    def build(model_class):
        builds.append(model_class)
        time.sleep(0.05)
        return build_model_metadata(model_class)

    registry = AttributeMetadataRegistry(build)

    def lookup():
        barrier.wait()
        results.append(registry.get(models.Product))

    threads = [threading.Thread(target=lookup) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert builds == [models.Product]
    assert len(results) == 8
    assert all(result is results[0] for result in results)


def test_capability_of() -> None:
    assert Capability.of(True) == Constant(True)
    assert Capability.of(None) == Constant(True)
    assert Capability.of(None, default=False) == Constant(False)
    assert Capability.of(0) == Constant(False)
    predicate = Capability.of(lambda ctx: ctx.admin)
    assert isinstance(predicate, Predicate)
    assert predicate.evaluate(RequestContext(admin=True))
    assert not predicate.evaluate(RequestContext(admin=False))


def test_filtered_by_purpose(models) -> None:
    def build(model_class):
        metadata = build_model_metadata(model_class)
        attributes = dict(metadata.attributes)
        attributes["price"] = dataclasses.replace(attributes["price"], filterable=Capability.of(lambda ctx: ctx.admin))
        return dataclasses.replace(metadata, attributes=attributes)

    registry = AttributeMetadataRegistry(build)
    assert "price" in registry.filtered(models.Product, "filter", RequestContext(admin=True))
    assert "price" not in registry.filtered(models.Product, "filter", RequestContext(admin=False))
    # the predicate is only evaluated for its own purpose
    assert "price" in registry.filtered(models.Product, "sort", RequestContext(admin=False))

    create = registry.filtered(models.Product, "create", RequestContext())
    assert "id" not in create
    assert "deleted" not in create
    assert "secret" not in create
    assert "internal_note" in create
    assert "label" not in create
    assert "internal_note" not in registry.filtered(models.Product, "update", RequestContext())
    assert "internal_note" not in registry.filtered(models.Product, "filter", RequestContext())

    with pytest.raises(ValueError):
        registry.filtered(models.Product, "destroy", RequestContext())


def test_filtered_ext_accepts_both_names(models) -> None:
    registry = AttributeMetadataRegistry()
    filtered = registry.filtered_ext(models.Product, "filter", RequestContext())
    assert filtered["title"] is filtered["name"]
    assert filtered["category"].is_association
    assert filtered["category"].association is models.Category


def test_subtypes_are_cached(models) -> None:
    registry = AttributeMetadataRegistry()
    subtypes = registry.subtypes(models.Widget)
    assert subtypes == {"WidgetA": models.WidgetA, "WidgetB": models.WidgetB}
    assert registry.subtypes(models.Widget) is subtypes
    assert registry.subtypes(models.WidgetA) == {}


def test_foreign_key_cache(models, data) -> None:
    assert belongs_to_keys(models.Product) == frozenset({"user_id", "category_id"})
    assert belongs_to_keys(models.Record) == frozenset()

    builder = QueryBuilder(RequestContext(model_class=models.Note))
    builder.filtered_by_foreign_key(builder.api_query().filter(models.Note.author_id == 1))
    assert models.Note in QueryBuilder.foreign_key_cache
    assert QueryBuilder.foreign_key_cache.get(models.Note, lambda model_class: frozenset()) == frozenset({"author_id"})


def test_api_attr_with_a_setter_is_writable(app) -> None:
    registry = AttributeMetadataRegistry()
    assert "price" in registry.filtered(Gadget, "create", RequestContext())
    assert "price" in registry.filtered(Gadget, "update", RequestContext())
    assert registry.get(Gadget).attributes["price"].column is None

    outcome = MutationPipeline(RequestContext(model_class=Gadget), _Saved(), registry=registry).create({"price": "2.5"})
    assert outcome.successful
    assert outcome.object.price_cents == 250
    assert outcome.object.price == 2.5


def test_names() -> None:
    assert model_name(Gadget) == "gadget"
    assert collection_name(Gadget) == "gadgets"


def test_soft_delete_column_setting(monkeypatch: pytest.MonkeyPatch) -> None:
    assert model_config_for(Gadget).soft_delete_column == "deleted"
    monkeypatch.setattr(ModelAPI, "SOFT_DELETE_COLUMN", "removed")
    get_config.cache_clear()
    try:
        assert model_config_for(Gadget).soft_delete_column == "removed"
        # declared on the model
        assert model_config_for(Archived).soft_delete_column == "archived"
    finally:
        get_config.cache_clear()


def test_soft_delete_column_app_config(app) -> None:
    app.config["SOFT_DELETE_COLUMN"] = "hidden"
    get_config.cache_clear()
    try:
        assert model_config_for(Gadget).soft_delete_column == "hidden"
    finally:
        get_config.cache_clear()
