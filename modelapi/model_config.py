"""Model-level api configuration.

A model declares its options in an ``__api_options__`` mapping, options declared
on base classes are inherited and can be overridden by subclasses::

    class Widget(DB.Model):
        __api_options__ = {"soft_delete_column": "removed", "hooks": {"after_initialize": set_owner}}

The soft delete column defaults to the ``SOFT_DELETE_COLUMN`` setting.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, FrozenSet, Mapping
from .config import get_config


Hook = Callable[..., Any]

OPTIONS_ATTRIBUTE = "__api_options__"


@dataclass(frozen=True)
class ModelConfig:
    """Configuration for a single model class.

    All fields are immutable, the config is part of the cached model metadata.
    """

    expose: bool = True
    exclude_attrs: FrozenSet[str] = frozenset()
    # boolean or integer column marking a row as deleted
    soft_delete_column: str = "deleted"
    # create-scoped attribute naming the subtype of a new object
    type_attribute: str = "type"
    # ownership scoping
    user_id_column: str = "user_id"
    user_association: str = "user"
    allow_client_generated_ids: bool = False
    # lifecycle hooks: "after_initialize" (obj, ctx) and "validate" (obj, ctx) -> errors
    hooks: Mapping[str, Hook] = field(default_factory=dict)

    def with_overrides(self, overrides: Mapping[str, Any]) -> "ModelConfig":
        """Return a new config where known fields are replaced by ``overrides``."""
        valid = {k: v for k, v in overrides.items() if k in self.__dataclass_fields__ and k != "hooks"}
        if "exclude_attrs" in valid:
            valid["exclude_attrs"] = frozenset(valid["exclude_attrs"])
        # Merge hooks (inherit base hooks, override/extend with new ones)
        if "hooks" in overrides and overrides["hooks"] is not None:
            merged = dict(self.hooks) if self.hooks else {}
            merged.update(dict(overrides["hooks"]))
            valid["hooks"] = merged
        if not valid:
            return self
        return replace(self, **valid)


def model_config_for(model_class: type) -> ModelConfig:
    """
    :param model_class: mapped model class
    :return: the options declared along the class hierarchy, subclasses last
    """
    config = ModelConfig(soft_delete_column=get_config("SOFT_DELETE_COLUMN") or ModelConfig.soft_delete_column)
    for klass in reversed(model_class.__mro__):
        overrides = vars(klass).get(OPTIONS_ATTRIBUTE)
        if overrides:
            config = config.with_overrides(overrides)
    return config
