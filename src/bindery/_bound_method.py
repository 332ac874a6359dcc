from __future__ import annotations

import inspect
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from . import _reflector as reflector
from ._errors import BindingResolutionError


if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Sequence

    from ._container import Container

    Parameters = Mapping[Any, Any] | Sequence[Any]


class BoundMethod:
    """Call a callable and inject the dependencies it declares.

    Accepted callbacks:
    - functions, lambdas, bound methods and objects implementing ``__call__``
    - ``(instance_or_class, "method")`` tuples
    - ``"package.module.Class@method"`` strings (the class is resolved by the container)
    - dotted strings naming a function or a static method.
    """

    def __init__(self, container: Container) -> None:
        self._container = container

    def call(
        self,
        callback: Any,
        parameters: Parameters | None = None,
        default_method: str | None = None,
    ) -> Any:
        if self._is_callable_with_at_sign(callback) or default_method:
            return self._call_class(callback, parameters, default_method)

        return self._call_bound_method(callback, lambda: self._invoke(callback, parameters))

    def _call_class(self, target: Any, parameters: Parameters | None, default_method: str | None) -> Any:
        if isinstance(target, str):
            segments = target.split("@")
            class_ref: Hashable = segments[0]
            method = segments[1] if len(segments) == 2 else default_method  # noqa: PLR2004
        else:
            class_ref, method = target, default_method

        if not method:
            msg = "Method not provided."
            raise ValueError(msg)

        return self.call((self._container.make(class_ref), method), parameters)

    def _call_bound_method(self, callback: Any, default: Callable[[], Any]) -> Any:
        if not (isinstance(callback, tuple) or inspect.ismethod(callback)):
            return default()

        # A registered method binding answers the call without reflecting into it.
        instance, name = self._split_method(callback)
        method = self._normalize_method(instance, name)
        if self._container.has_method_binding(method):
            return self._container.call_method_binding(method, instance)

        return default()

    def _invoke(self, callback: Any, parameters: Parameters | None) -> Any:
        target = self._get_callable(callback)
        args, kwargs = self._get_method_dependencies(target, parameters)
        return target(*args, **kwargs)

    def _get_callable(self, callback: Any) -> Callable[..., Any]:
        if isinstance(callback, tuple):
            owner, name = callback
            return getattr(owner, name)

        if isinstance(callback, str):
            target = reflector.load_object(callback)
            if target is None or not callable(target):
                msg = f"Function [{callback}] does not exist."
                raise ValueError(msg)
            return target

        if not callable(callback):
            msg = f"{callback!r} is not callable."
            raise TypeError(msg)

        return callback

    def _get_method_dependencies(
        self,
        target: Callable[..., Any],
        parameters: Parameters | None,
    ) -> tuple[list[Any], dict[str, Any]]:
        remaining = self._normalize_parameters(parameters)
        signature = inspect.signature(target)
        owner = self._owner_of(target)
        hints = self._hints_of(target, owner)

        values: dict[str, Any] = {}
        for parameter in signature.parameters.values():
            self._add_dependency_for_call_parameter(target, parameter, remaining, values, hints, owner)

        # Whatever the caller supplied and nothing consumed trails the declared arguments.
        for parameter in signature.parameters.values():
            if parameter.kind is parameter.VAR_POSITIONAL:
                positions = sorted(key for key in remaining if isinstance(key, int))
                values[parameter.name] = [remaining.pop(key) for key in positions]
            elif parameter.kind is parameter.VAR_KEYWORD:
                names = [key for key in remaining if isinstance(key, str)]
                values[parameter.name] = {key: remaining.pop(key) for key in names}

        return reflector.materialize_call(signature.parameters.values(), values)

    def _add_dependency_for_call_parameter(  # noqa: PLR0913
        self,
        target: Callable[..., Any],
        parameter: inspect.Parameter,
        remaining: dict[Any, Any],
        values: dict[str, Any],
        hints: Mapping[str, Any],
        owner: type | None,
    ) -> None:
        if parameter.kind in (parameter.VAR_POSITIONAL, parameter.VAR_KEYWORD):
            return

        if parameter.name in remaining:
            values[parameter.name] = remaining.pop(parameter.name)
            return

        class_type = reflector.get_parameter_class(parameter, hints, owner)
        if class_type is not None:
            for key in (class_type, reflector.qualified_name(class_type)):
                if key in remaining:
                    values[parameter.name] = remaining.pop(key)
                    return
            values[parameter.name] = self._container.make(class_type)
            return

        if parameter.default is not parameter.empty:
            values[parameter.name] = parameter.default
            return

        msg = f"Unable to resolve dependency [{parameter}] in {self._describe(target)}"
        raise BindingResolutionError(msg)

    @staticmethod
    def _normalize_parameters(parameters: Parameters | None) -> dict[Any, Any]:
        if parameters is None:
            return {}
        if isinstance(parameters, Mapping):
            return dict(parameters)
        return dict(enumerate(parameters))

    @staticmethod
    def _split_method(callback: Any) -> tuple[Any, str]:
        if isinstance(callback, tuple):
            return callback[0], callback[1]
        return callback.__self__, callback.__name__

    @staticmethod
    def _normalize_method(instance: Any, name: str) -> str:
        owner = instance if inspect.isclass(instance) else type(instance)
        return f"{reflector.qualified_name(owner)}@{name}"

    @staticmethod
    def _owner_of(target: Callable[..., Any]) -> type | None:
        if inspect.isclass(target):
            return target
        if inspect.ismethod(target):
            bound_to = target.__self__
            return bound_to if inspect.isclass(bound_to) else type(bound_to)
        if inspect.isfunction(target) or inspect.isbuiltin(target):
            return None
        return type(target)

    @staticmethod
    def _hints_of(target: Callable[..., Any], owner: type | None) -> dict[str, Any]:
        if inspect.isclass(target):
            return reflector.constructor_hints(target)
        if inspect.ismethod(target):
            return reflector.get_type_hints_safe(target.__func__, owner)
        if inspect.isfunction(target) or owner is None:
            return reflector.get_type_hints_safe(target, owner)
        # callable instance
        return reflector.get_type_hints_safe(type(target).__call__, owner)

    @staticmethod
    def _describe(target: Callable[..., Any]) -> str:
        if hasattr(target, "__qualname__"):
            return reflector.qualified_name(getattr(target, "__func__", target))
        return reflector.qualified_name(type(target))

    @staticmethod
    def _is_callable_with_at_sign(callback: Any) -> bool:
        return isinstance(callback, str) and "@" in callback
