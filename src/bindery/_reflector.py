"""Type introspection used by the container and the call invoker.

Answers one question per parameter: which class does it require, if any.
Parameters without a class requirement (builtins, unions, generics, missing
annotations) are "primitives" and are satisfied by overrides, contextual
primitives or defaults instead of by the container.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import types
import typing
from typing import TYPE_CHECKING, Annotated, Any, Protocol, Self, Union, cast, get_args, get_origin, get_type_hints


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

_MISSING = object()


def qualified_name(obj: object) -> str:
    """Dotted name used for diagnostics and ``Class@method`` keys."""
    if isinstance(obj, str):
        return obj

    qualname = getattr(obj, "__qualname__", None)
    if not isinstance(qualname, str):
        return repr(obj)

    module = getattr(obj, "__module__", None)
    if module in (None, "builtins"):
        return qualname
    return f"{module}.{qualname}"


def load_object(name: str) -> Any | None:
    """Import ``package.module.Attr[.Nested]`` and return the attribute, or None."""
    parts = name.split(".")
    if len(parts) < 2 or not all(parts):  # noqa: PLR2004
        return None

    for index in range(len(parts) - 1, 0, -1):
        try:
            target: Any = importlib.import_module(".".join(parts[:index]))
        except ModuleNotFoundError:
            continue

        for attr in parts[index:]:
            target = getattr(target, attr, _MISSING)
            if target is _MISSING:
                return None
        return target

    return None


def load_class(name: str) -> type | None:
    target = load_object(name)
    return target if inspect.isclass(target) else None


def is_factory(obj: object) -> bool:
    """Callables that produce instances, as opposed to classes that get built."""
    return callable(obj) and not inspect.isclass(obj)


def is_runtime_checkable_protocol(tp: type) -> bool:
    if not is_protocol(tp):
        return False

    try:
        isinstance(None, tp)
    except TypeError:
        return False
    else:
        return True


def is_instantiable(cls: type) -> bool:
    return not inspect.isabstract(cls) and not is_protocol(cls)


def constructor_parameters(cls: type) -> list[inspect.Parameter]:
    """Raises ValueError for classes without signature metadata, such as ``range``."""
    return list(inspect.signature(cls).parameters.values())


def constructor_hints(cls: type) -> dict[str, Any]:
    return get_type_hints_safe(inspect.getattr_static(cls, "__init__"), cls)


def get_type_hints_safe(fn: object, owner: type | None = None) -> dict[str, Any]:
    localns = {owner.__name__: owner} if owner is not None else None
    try:
        hints = get_type_hints(fn, localns=localns)
    except TypeError:
        hints = {}
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s type hints", exc.name, qualified_name(fn))
        hints = {}

    return hints


def get_parameter_class(
    parameter: inspect.Parameter,
    hints: Mapping[str, Any],
    owner: type | None = None,
) -> type | None:
    """Return the class a parameter requires, or None for primitives.

    ``Self`` resolves to ``owner``; ``Optional[X]`` and ``X | None`` resolve to ``X``.
    For ``*args: X`` the element type ``X`` is returned.
    """
    annotation = hints.get(parameter.name, parameter.annotation)
    if annotation is inspect.Parameter.empty:
        return None
    return _class_from_annotation(annotation, owner)


def _class_from_annotation(annotation: Any, owner: type | None) -> type | None:
    if annotation is Self:
        return owner

    if annotation is Any:
        return None

    if isinstance(annotation, str):
        # unresolved forward reference; only self-references are recoverable
        if owner is not None and annotation in (owner.__name__, "Self"):
            return owner
        return None

    origin = get_origin(annotation)
    if origin is Annotated:
        return _class_from_annotation(get_args(annotation)[0], owner)

    if origin is Union or origin is types.UnionType:
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        if len(members) != 1:
            return None
        return _class_from_annotation(members[0], owner)

    if origin is not None:
        return None

    if inspect.isclass(annotation) and annotation.__module__ != "builtins":
        return annotation
    return None


def invoke(callback: Callable[..., Any], *args: Any) -> Any:
    """Call ``callback`` with as many of ``args`` as it accepts positionally."""
    return callback(*args[: _positional_capacity(callback, len(args))])


def _positional_capacity(callback: Callable[..., Any], offered: int) -> int:
    try:
        parameters = inspect.signature(callback).parameters.values()
    except (TypeError, ValueError):
        return offered

    count = 0
    for p in parameters:
        if p.kind is p.VAR_POSITIONAL:
            return offered
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD):
            count += 1
    return min(count, offered)


def materialize_call(
    parameters: Iterable[inspect.Parameter],
    values: Mapping[str, Any],
) -> tuple[list[Any], dict[str, Any]]:
    """Turn resolved values into call arguments, in declaration order.

    Values for ``*args`` are spread, values for ``**kwargs`` are merged, and
    keyword-only parameters are passed by name.
    """
    args: list[Any] = []
    kwargs: dict[str, Any] = {}

    for p in parameters:
        if p.name not in values:
            continue

        value = values[p.name]
        if p.kind is p.VAR_POSITIONAL:
            args.extend(value)
        elif p.kind is p.VAR_KEYWORD:
            kwargs.update(value)
        elif p.kind is p.KEYWORD_ONLY:
            kwargs[p.name] = value
        else:
            args.append(value)

    return args, kwargs


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def is_protocol(tp: object) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def is_protocol(tp: object) -> bool:
        """Detect whether 'tp' is a typing.Protocol class (safe)."""
        return inspect.isclass(tp) and bool(getattr(tp, "_is_protocol", False)) and tp is not cast("type", Protocol)
