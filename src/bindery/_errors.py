from __future__ import annotations

from typing import Any


class ContainerError(RuntimeError):
    pass


class BindingResolutionError(ContainerError):
    """A concrete could not be built or one of its dependencies could not be satisfied."""


class EntryNotFoundError(ContainerError, LookupError):
    """Raised by `Container.get` for identifiers that are neither bound nor buildable."""

    def __init__(self, entry: Any) -> None:
        super().__init__(f"No entry was found for [{entry}].")
        self.entry = entry
