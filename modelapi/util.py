#
import re
import threading
from typing import Any, Callable, Hashable


class OnceCache:
    """
    Process-wide map where every value is built exactly once per key.

    Concurrent first lookups of the same key wait for a single build,
    lookups of a key that has been built don't take the lock.
    Values live for the lifetime of the process, there is no invalidation.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._values = {}
        # reentrant: a factory may look up other keys
        self._lock = threading.RLock()

    def get(self, key: Hashable, factory: Callable[[Hashable], Any]) -> Any:
        try:
            return self._values[key]
        except KeyError:
            pass
        with self._lock:
            if key not in self._values:
                self._values[key] = factory(key)
            return self._values[key]

    def __contains__(self, key: Hashable) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"<OnceCache {self.name} ({len(self)} keys)>"


def camelize(value: str) -> str:
    """
    "widget_a" => "WidgetA", "gadget" => "Gadget"
    """
    parts = re.split(r"[_\s-]+", str(value).strip())
    return "".join(part[:1].upper() + part[1:] for part in parts if part)


def underscore(value: str) -> str:
    """
    "WidgetA" => "widget_a"
    """
    value = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", str(value))
    value = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", value)
    return value.replace("-", "_").lower()
