"""Per-request context.

A :class:`RequestContext` is built once per request by the resource and passed by
reference to the parser, the query builder, the paginator, the link assembler and the
mutation pipeline. It replaces a free-form option dict: every recognized option is a field.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Union


class Operation(str, Enum):
    INDEX = "index"
    SHOW = "show"
    CREATE = "create"
    UPDATE = "update"
    PATCH = "patch"
    DESTROY = "destroy"

    @property
    def purpose(self) -> str:
        """The metadata capability checked for writes of this operation"""
        if self is Operation.CREATE:
            return "create"
        return "update"

    @classmethod
    def from_action(cls, action: Optional[str]) -> Optional["Operation"]:
        """
        :param action: name of the invoked action (e.g. the view endpoint "create_product")
        :return: write operation the action name starts with, None if there is none
        """
        if not action:
            return None
        action = action.rsplit(".", 1)[-1].lower()
        for operation in (cls.CREATE, cls.UPDATE, cls.PATCH, cls.DESTROY):
            if action.startswith(operation.value):
                return operation
        return None


Scope = Union[Mapping[str, Any], Callable[[Any, "RequestContext"], Any], None]


@dataclass(frozen=True)
class RequestContext:
    """Immutable request scoped options"""

    model_class: Optional[type] = None
    operation: Optional[Operation] = None
    # acting principal, resolved by the application
    user: Any = None
    user_id: Any = None
    admin: bool = False
    admin_content: bool = False
    admin_only: bool = False
    # None: scope by owner if possible, True: scoping is required, False: opt out
    user_filter: Optional[bool] = None
    # always-applied narrowing: {column: value} or callable(query, ctx) -> query
    scope: Scope = None
    time_zone: Optional[str] = None
    # pagination overrides
    page: Optional[int] = None
    page_size: Optional[int] = None
    # link overrides
    collection_route: Any = None
    object_route: Any = None
    default_object_route: Any = None
    links: Mapping[str, Any] = field(default_factory=dict)
    # query arguments of the current request (a list for repeated arguments), used for the link parameters
    link_params: Mapping[str, Any] = field(default_factory=dict)
    # single object addressing
    id_attribute: str = "id"
    id_param: str = "id"
    id_value: Any = None
    not_found_error: Any = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def with_overrides(self, **overrides: Any) -> "RequestContext":
        """Return a new context where known fields are replaced by ``overrides``."""
        valid = {k: v for k, v in overrides.items() if k in self.__dataclass_fields__}
        if not valid:
            return self
        return replace(self, **valid)

    @property
    def user_time_zone(self) -> Optional[str]:
        return self.time_zone or getattr(self.user, "time_zone", None) or None

    @property
    def principal_id(self) -> Any:
        if self.user_id is not None:
            return self.user_id
        return getattr(self.user, "id", None)
