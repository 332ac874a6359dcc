"""Dependency injection resolution engine.

This package turns abstract identifiers (classes, protocols or string keys)
into fully constructed objects, satisfying constructor dependencies through
type-hint introspection instead of hand-written factories.

Exports:
- `Container`: binding registry and resolver (bind/singleton/instance/alias,
  make/build/call, contextual bindings, extenders and lifecycle callbacks).
- `ContextualBindingBuilder`: fluent `when(...).needs(...).give(...)` helper.
- `BoundMethod`: invokes callables and `Class@method` strings with injected dependencies.
- `BindingResolutionError`: a concrete or one of its dependencies cannot be built.
- `EntryNotFoundError`: raised by `Container.get` for unknown identifiers.
"""

from ._bound_method import BoundMethod
from ._container import Binding, Container
from ._contextual import ContextualBindingBuilder
from ._errors import BindingResolutionError, ContainerError, EntryNotFoundError


__all__ = [
    "Binding",
    "BindingResolutionError",
    "BoundMethod",
    "Container",
    "ContainerError",
    "ContextualBindingBuilder",
    "EntryNotFoundError",
]
