"""Discriminator string sets attached to events.

A descriptor is a named set of strings an event carries besides its name.
Filters subscribe to them by name (``click:button[/ok/]`` tests the
``button`` strings of a ``click`` event).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ...utilities.identifiers import smash

# classes that never contribute a descriptor of their own
_IGNORED_BASES = frozenset({"object", "Emitter"})


class Descriptors(dict[str, set[str]]):
    """Mapping of smashed discriminator name to its strings."""

    def __init__(
        self,
        instance: Any = None,
        descriptors: Mapping[str, str | Iterable[str]] | None = None,
    ):
        super().__init__()
        if isinstance(instance, Descriptors):
            for name, values in instance.items():
                self[name] = set(values)
        elif instance is not None:
            for cls in type(instance).__mro__:
                if cls.__name__ not in _IGNORED_BASES:
                    self.add(cls.__name__, "")

        if descriptors:
            for name, values in descriptors.items():
                if isinstance(values, str):
                    self.add(name, values)
                else:
                    self.add(name, *values)

    def get(self, name: str, default: Any = None) -> set[str] | None:  # type: ignore[override]
        return super().get(smash(name), default)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and super().__contains__(smash(name))

    def add(self, name: str, *values: str) -> None:
        if not values:
            return
        self.setdefault(smash(name), set()).update(values)


class _NoDescriptors(Descriptors):
    """The empty provider shared by every event created without descriptors."""

    def _read_only(self, *args: Any, **kwargs: Any) -> Any:
        raise TypeError("NO_DESCRIPTORS is shared and cannot be modified")

    add = _read_only  # type: ignore[assignment]
    __setitem__ = _read_only  # type: ignore[assignment]
    __delitem__ = _read_only  # type: ignore[assignment]
    __ior__ = _read_only  # type: ignore[assignment]
    setdefault = _read_only  # type: ignore[assignment]
    update = _read_only  # type: ignore[assignment]
    pop = _read_only  # type: ignore[assignment]
    popitem = _read_only  # type: ignore[assignment]
    clear = _read_only  # type: ignore[assignment]


NO_DESCRIPTORS: Descriptors = _NoDescriptors()
