"""
Module table for attached modules.

A module is any object (or mapping) with a non-empty string ``name``
and optional ``connect(rail)`` / ``disconnect(rail)`` hooks. Hooks are
found by capability checks, not by type.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from numbers import Number
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from rail.errors import DuplicateModuleError, InvalidModuleError

if TYPE_CHECKING:
    from rail.core.bus import Rail


@runtime_checkable
class Module(Protocol):
    """Shape of an attachable module. ``connect``/``disconnect`` are optional."""

    name: str


def module_name(module: Any) -> str:
    """
    Validate ``module`` and return its name.

    Raises:
        InvalidModuleError: If ``module`` is not a structured record
            or has no non-empty string name
    """
    if module is None or isinstance(module, (str, bytes, bytearray, Number)):
        raise InvalidModuleError("Module must be an object")

    if isinstance(module, Mapping):
        name = module.get("name")
    else:
        name = getattr(module, "name", None)

    if not isinstance(name, str) or not name:
        raise InvalidModuleError("Module must have a non-empty string name")
    return name


def module_hook(module: Any, hook: str) -> Callable[[Rail], Any] | None:
    """Return the module's ``hook`` if it has a callable one."""
    if isinstance(module, Mapping):
        fn = module.get(hook)
    else:
        fn = getattr(module, hook, None)
    return fn if callable(fn) else None


class ModuleTable:
    """Attached modules by name, in attach order."""

    def __init__(self) -> None:
        self._modules: dict[str, Any] = {}

    def add(self, name: str, module: Any) -> None:
        if name in self._modules:
            raise DuplicateModuleError(name)
        self._modules[name] = module

    def remove(self, name: str) -> Any | None:
        return self._modules.pop(name, None)

    def get(self, name: str) -> Any | None:
        return self._modules.get(name)

    def names(self) -> list[str]:
        return list(self._modules)

    def __contains__(self, name: object) -> bool:
        return name in self._modules

    def __len__(self) -> int:
        return len(self._modules)
