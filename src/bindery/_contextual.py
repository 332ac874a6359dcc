from __future__ import annotations

from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Hashable, Sequence

    from ._container import Container

_UNSET: Any = object()


class ContextualBindingBuilder:
    """Fluent registration of contextual bindings.

    Example:
      container.when(PhotoController).needs(Filesystem).give(LocalFilesystem)
      container.when(Mailer).needs("$retries").give(3)
      container.when(Pipeline).needs(Handler).give([Auth, Audit])

    """

    def __init__(self, container: Container, concretes: Sequence[Hashable]) -> None:
        self._container = container
        self._concretes = list(concretes)
        self._needs: Any = _UNSET

    def needs(self, abstract: Hashable) -> ContextualBindingBuilder:
        self._needs = abstract
        return self

    def give(self, implementation: Any) -> None:
        if self._needs is _UNSET:
            msg = "Call needs() before give()."
            raise ValueError(msg)

        for concrete in self._concretes:
            self._container.add_contextual_binding(concrete, self._needs, implementation)
