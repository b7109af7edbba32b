"""
    api_attr: api attributes that are not backed by a mapped column
"""

from sqlalchemy.ext.hybrid import hybrid_property
from typing import Any, Callable

API_ATTR_TAG = "_api_attr_tag"

# declarations accepted on columns, relationships and api_attr properties
ATTRIBUTE_FLAGS = (
    "expose",
    "filterable",
    "sortable",
    "creatable",
    "updatable",
    "ext_name",
    "default_sort_order",
    "filter_delimiter",
    "parse",
    "render",
    "render_method",
)


class api_attr(hybrid_property):
    """
    hybrid_property that is exposed as an api attribute, e.g.

        @api_attr
        def display_name(self):
            return f"{self.first_name} {self.last_name}"

        @api_attr.with_options(sortable=True, render_method="price_cents")
        def price(self):
            return self.price_cents / 100

    Filters and sorts on an api_attr are applied to the `render_method` column when it names one,
    otherwise they're reported back as result filters/sorts.
    """

    def __init__(self, fget, *args, api_flags=None, **kwargs):
        flags = dict(api_flags or {})
        for name in ATTRIBUTE_FLAGS:
            if name in kwargs:
                flags[name] = kwargs.pop(name)
        # hybrid_property copies the public instance attributes into the
        # constructor kwargs when a getter/setter/expression is added
        self.api_flags = flags
        setattr(self, API_ATTR_TAG, True)
        super().__init__(fget, *args, **kwargs)

    @classmethod
    def with_options(cls, **flags: Any) -> Callable:
        """
        :param flags: attribute declarations, see ATTRIBUTE_FLAGS
        :return: decorator creating an api_attr
        """

        def decorator(fget):
            return cls(fget, api_flags=flags)

        return decorator

    def getter(self, fget):
        """
        Provide a decorator that defines a getter method.
        """
        return self._copy(fget=fget)

    def setter(self, fset):
        """
        Provide a decorator that defines a setter method.
        """
        return self._copy(fset=fset)


def is_api_attr(attr: Any) -> bool:
    """
    :param attr: class attribute
    :return: boolean
    """
    return getattr(attr, API_ATTR_TAG, False) is True
