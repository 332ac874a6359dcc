from __future__ import annotations

import inspect
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NoReturn, TypeVar, overload

from . import _reflector as reflector
from ._bound_method import BoundMethod
from ._contextual import ContextualBindingBuilder
from ._errors import BindingResolutionError, EntryNotFoundError


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Iterable, Sequence

    T = TypeVar("T")

    Parameters = Mapping[Any, Any] | Sequence[Any]
    Callback = Callable[..., Any]


@dataclass
class Binding:
    concrete: Callable[..., Any]  # factory: (container, parameters) -> instance
    shared: bool = False


class Container:
    """Service container.

    - bind abstracts (classes, protocols or string keys) to classes, identifiers or factories
    - resolve with constructor injection, recursively
    - lifetimes: shared (singleton) / transient
    - aliases, contextual bindings, extenders and lifecycle callbacks
    - call arbitrary callables with their dependencies injected.

    Options:
    - `detect_cycles`: fail with a BindingResolutionError when a class is
      requested while it is already being built. When disabled, a dependency
      cycle recurses until Python raises RecursionError.
    """

    def __init__(self, *, detect_cycles: bool = True) -> None:
        self.detect_cycles = detect_cycles

        self._bindings: dict[Any, Binding] = {}
        self._instances: dict[Any, Any] = {}
        self._resolved: dict[Any, bool] = {}
        self._aliases: dict[Any, Any] = {}
        self._abstract_aliases: dict[Any, list[Any]] = {}
        self._method_bindings: dict[str, Callback] = {}
        self._extenders: dict[Any, list[Callback]] = {}
        self._tags: dict[Any, list[Any]] = {}

        # dotted string key -> the class it names, or the string itself
        self._class_keys: dict[str, Any] = {}

        # consumer class -> {needed abstract -> implementation}
        self._contextual: dict[Any, dict[Any, Any]] = {}

        self._build_stack: list[type] = []
        self._with: list[Parameters] = []

        self._rebound_callbacks: dict[Any, list[Callback]] = {}
        self._global_resolving_callbacks: list[Callback] = []
        self._global_after_resolving_callbacks: list[Callback] = []
        self._resolving_callbacks: dict[Any, list[Callback]] = {}
        self._after_resolving_callbacks: dict[Any, list[Callback]] = {}

    # Registry queries

    def bound(self, abstract: Hashable) -> bool:
        """Determine if the abstract has a binding, an instance or is an alias."""
        abstract = self._normalize(abstract)
        return abstract in self._bindings or abstract in self._instances or self.is_alias(abstract)

    def has(self, abstract: Hashable) -> bool:
        return self.bound(abstract)

    def resolved(self, abstract: Hashable) -> bool:
        abstract = self._normalize(abstract)
        if self.is_alias(abstract):
            abstract = self.get_alias(abstract)

        return abstract in self._resolved or abstract in self._instances

    def is_shared(self, abstract: Hashable) -> bool:
        abstract = self._normalize(abstract)
        binding = self._bindings.get(abstract)
        return abstract in self._instances or (binding is not None and binding.shared)

    def is_alias(self, name: Hashable) -> bool:
        return self._normalize(name) in self._aliases

    def get_alias(self, abstract: Hashable) -> Any:
        """Follow the alias chain to the canonical abstract."""
        abstract = self._normalize(abstract)
        while abstract in self._aliases:
            abstract = self._aliases[abstract]
        return abstract

    def get_bindings(self) -> dict[Any, Binding]:
        return dict(self._bindings)

    # Registration

    def bind(self, abstract: Hashable, concrete: Any = None, shared: bool = False) -> None:  # noqa: FBT001, FBT002
        """Register a binding.

        Example:
          container.bind(Cache, RedisCache)
          container.bind("mailer", lambda c, params: SmtpMailer(c.make(Transport)))
          container.bind(Clock)  # self-binding

        Classes and identifiers are wrapped into a factory; callables are used as factories.
        """
        abstract = self._normalize(abstract)
        self._drop_stale_instances(abstract)

        if concrete is None:
            concrete = abstract
        elif isinstance(concrete, str):
            concrete = self._normalize(concrete)

        if not reflector.is_factory(concrete):
            concrete = self._get_closure(abstract, concrete)

        self._bindings[abstract] = Binding(concrete=concrete, shared=shared)

        # Already-resolved abstracts notify their consumers so they can refresh references.
        if self.resolved(abstract):
            self._rebound(abstract)

    def bind_if(self, abstract: Hashable, concrete: Any = None, shared: bool = False) -> None:  # noqa: FBT001, FBT002
        if not self.bound(abstract):
            self.bind(abstract, concrete, shared)

    def singleton(self, abstract: Hashable, concrete: Any = None) -> None:
        self.bind(abstract, concrete, shared=True)

    def singleton_if(self, abstract: Hashable, concrete: Any = None) -> None:
        if not self.bound(abstract):
            self.singleton(abstract, concrete)

    def instance(self, abstract: Hashable, instance: T) -> T:
        """Register a pre-built object as the shared instance of the abstract."""
        abstract = self._normalize(abstract)
        self._remove_abstract_alias(abstract)

        is_bound = self.bound(abstract)

        self._aliases.pop(abstract, None)
        self._instances[abstract] = instance

        if is_bound:
            self._rebound(abstract)

        return instance

    def alias(self, abstract: Hashable, alias: Hashable) -> None:
        abstract, alias = self._normalize(abstract), self._normalize(alias)
        if alias == abstract or self._alias_chain_reaches(abstract, alias):
            msg = f"[{reflector.qualified_name(alias)}] is aliased to itself."
            raise ValueError(msg)

        self._aliases[alias] = abstract
        self._abstract_aliases.setdefault(abstract, []).append(alias)

    def set(self, abstract: Hashable, value: Any) -> None:
        """Bind a factory, or any other value behind a factory returning it."""
        self.bind(abstract, value if reflector.is_factory(value) else lambda: value)

    def unset(self, abstract: Hashable) -> None:
        abstract = self._normalize(abstract)
        self._bindings.pop(abstract, None)
        self._instances.pop(abstract, None)
        self._resolved.pop(abstract, None)

    def extend(self, abstract: Hashable, closure: Callable[..., Any]) -> None:
        """Decorate the abstract's instances with `closure(instance, container) -> instance`."""
        abstract = self.get_alias(abstract)

        if abstract in self._instances:
            self._instances[abstract] = reflector.invoke(closure, self._instances[abstract], self)
            self._rebound(abstract)
        else:
            self._extenders.setdefault(abstract, []).append(closure)

            if self.resolved(abstract):
                self._rebound(abstract)

    def forget_extenders(self, abstract: Hashable) -> None:
        self._extenders.pop(self.get_alias(abstract), None)

    def tag(self, abstracts: Hashable | Iterable[Hashable], *tags: Hashable) -> None:
        if isinstance(abstracts, (list, tuple, set, frozenset)):
            targets = list(abstracts)
        else:
            targets = [abstracts]

        for tag in tags:
            tagged = self._tags.setdefault(tag, [])
            tagged.extend(abstract for abstract in targets if abstract not in tagged)

    def tagged(self, tag: Hashable) -> list[Any]:
        return [self.make(abstract) for abstract in self._tags.get(tag, [])]

    def when(self, *concretes: Hashable) -> ContextualBindingBuilder:
        """Start a contextual binding for the given consumer classes."""
        return ContextualBindingBuilder(self, [self.get_alias(concrete) for concrete in concretes])

    def add_contextual_binding(self, concrete: Hashable, abstract: Hashable, implementation: Any) -> None:
        concrete = self.get_alias(concrete)
        abstract = self.get_alias(abstract)
        self._contextual.setdefault(concrete, {})[abstract] = implementation
        logger.debug(
            "Contextual binding: %s needs %s -> %s",
            reflector.qualified_name(concrete),
            reflector.qualified_name(abstract),
            reflector.qualified_name(implementation),
        )

    # Method bindings

    def bind_method(self, method: str | tuple[Any, str], callback: Callable[..., Any]) -> None:
        """Answer calls to `Class@method` with `callback(instance, container)`."""
        self._method_bindings[self._parse_bind_method(method)] = callback

    def has_method_binding(self, method: str) -> bool:
        return method in self._method_bindings

    def call_method_binding(self, method: str, instance: Any) -> Any:
        return reflector.invoke(self._method_bindings[method], instance, self)

    # Lifecycle callbacks

    def rebinding(self, abstract: Hashable, callback: Callable[..., Any]) -> Any:
        """Observe replacements of the abstract with `callback(container, instance)`.

        Returns the current instance when the abstract is already bound.
        """
        abstract = self.get_alias(abstract)
        self._rebound_callbacks.setdefault(abstract, []).append(callback)

        if self.bound(abstract):
            return self.make(abstract)
        return None

    def refresh(self, abstract: Hashable, target: Any, method: str) -> Any:
        """Call `target.method(instance)` whenever the abstract is rebound."""
        return self.rebinding(abstract, lambda _container, instance: getattr(target, method)(instance))

    def resolving(self, abstract: Any, callback: Callable[..., Any] | None = None) -> None:
        """Register `callback(instance, container)`; without an abstract it applies to everything."""
        if callback is None and reflector.is_factory(abstract):
            self._global_resolving_callbacks.append(abstract)
            return
        self._resolving_callbacks.setdefault(self.get_alias(abstract), []).append(self._require(callback))

    def after_resolving(self, abstract: Any, callback: Callable[..., Any] | None = None) -> None:
        if callback is None and reflector.is_factory(abstract):
            self._global_after_resolving_callbacks.append(abstract)
            return
        self._after_resolving_callbacks.setdefault(self.get_alias(abstract), []).append(self._require(callback))

    # Resolution

    def factory(self, abstract: Hashable) -> Callable[[], Any]:
        return lambda: self.make(abstract)

    def wrap(self, callback: Any, parameters: Parameters | None = None) -> Callable[[], Any]:
        return lambda: self.call(callback, parameters)

    def call(
        self,
        callback: Any,
        parameters: Parameters | None = None,
        default_method: str | None = None,
    ) -> Any:
        """Call a callable or `Class@method` string, injecting its dependencies."""
        return BoundMethod(self).call(callback, parameters, default_method)

    @overload
    def make(self, abstract: type[T], parameters: Parameters | None = ...) -> T: ...

    @overload
    def make(self, abstract: Hashable, parameters: Parameters | None = ...) -> Any: ...

    def make(self, abstract: Any, parameters: Parameters | None = None) -> Any:
        """Resolve the abstract to an instance.

        `parameters` overrides constructor arguments by name (or is handed to a
        factory as-is) and forces a fresh build, bypassing the shared instance.
        """
        return self.resolve(abstract, parameters)

    def get(self, entry: Hashable) -> Any:
        try:
            return self.resolve(entry)
        except BindingResolutionError as e:
            if self.has(entry):
                raise

            raise EntryNotFoundError(entry) from e

    def resolve(self, abstract: Any, parameters: Parameters | None = None, raise_events: bool = True) -> Any:  # noqa: FBT001, FBT002
        abstract = self.get_alias(abstract)
        parameters = parameters if parameters is not None else {}

        needs_contextual_build = bool(parameters) or self._get_contextual_concrete(abstract) is not None

        # Shared instances are returned as-is unless this build is parameterised or contextual.
        if abstract in self._instances and not needs_contextual_build:
            return self._instances[abstract]

        self._with.append(parameters)
        try:
            concrete = self._get_concrete(abstract)

            if self._is_buildable(concrete, abstract):
                obj = self.build(concrete)
            else:
                obj = self.make(concrete)

            for extender in self._get_extenders(abstract):
                obj = reflector.invoke(extender, obj, self)

            if self.is_shared(abstract) and not needs_contextual_build:
                self._instances[abstract] = obj

            if raise_events:
                self._fire_resolving_callbacks(abstract, obj)

            self._resolved[abstract] = True
        finally:
            self._with.pop()

        return obj

    def build(self, concrete: Any) -> Any:
        """Instantiate a concrete: call it if it is a factory, otherwise construct the class."""
        if reflector.is_factory(concrete):
            return reflector.invoke(concrete, self, self._get_last_parameter_override())

        cls = reflector.load_class(concrete) if isinstance(concrete, str) else concrete
        if not inspect.isclass(cls):
            msg = f"Target class [{reflector.qualified_name(concrete)}] does not exist."
            raise BindingResolutionError(msg)

        if not reflector.is_instantiable(cls):
            self._not_instantiable(cls)

        if self.detect_cycles and cls in self._build_stack:
            self._circular_dependency(cls)

        self._build_stack.append(cls)
        try:
            args, kwargs = self._resolve_dependencies(cls)
        finally:
            self._build_stack.pop()

        return cls(*args, **kwargs)

    # Cache invalidation

    def forget_instance(self, abstract: Hashable) -> None:
        abstract = self._normalize(abstract)
        self._instances.pop(abstract, None)

    def forget_instances(self) -> None:
        self._instances.clear()

    def flush(self) -> None:
        """Drop all bindings, aliases, resolved flags and shared instances."""
        self._aliases.clear()
        self._resolved.clear()
        self._bindings.clear()
        self._instances.clear()
        self._abstract_aliases.clear()
        self._class_keys.clear()

    # Internals

    def _get_closure(self, abstract: Hashable, concrete: Any) -> Callable[[Container, Parameters], Any]:
        def closure(container: Container, parameters: Parameters) -> Any:
            if abstract == concrete:
                return container.build(concrete)

            return container.resolve(concrete, parameters, raise_events=False)

        return closure

    def _get_concrete(self, abstract: Any) -> Any:
        concrete = self._get_contextual_concrete(abstract)
        if concrete is not None:
            return concrete

        # Unbound abstracts are assumed to be directly constructible.
        binding = self._bindings.get(abstract)
        if binding is not None:
            return binding.concrete

        return abstract

    def _get_contextual_concrete(self, abstract: Any) -> Any:
        binding = self._find_in_contextual_bindings(abstract)
        if binding is not None:
            return binding

        # Contextual bindings may have been registered under an alias of the abstract.
        for alias in self._abstract_aliases.get(abstract, ()):
            binding = self._find_in_contextual_bindings(alias)
            if binding is not None:
                return binding

        return None

    def _find_in_contextual_bindings(self, abstract: Any) -> Any:
        if not self._build_stack:
            return None
        return self._contextual.get(self._build_stack[-1], {}).get(abstract)

    def _is_buildable(self, concrete: Any, abstract: Any) -> bool:
        return concrete == abstract or reflector.is_factory(concrete)

    def _resolve_dependencies(self, cls: type) -> tuple[list[Any], dict[str, Any]]:
        try:
            parameters = reflector.constructor_parameters(cls)
        except (TypeError, ValueError) as e:
            msg = f"Unable to inspect the constructor of [{reflector.qualified_name(cls)}]: {e}"
            raise BindingResolutionError(msg) from e

        if not parameters:
            return [], {}

        hints = reflector.constructor_hints(cls)
        values: dict[str, Any] = {}
        consumed: set[str] = set()

        for parameter in parameters:
            if parameter.kind is parameter.VAR_KEYWORD:
                continue

            if self._has_parameter_override(parameter):
                values[parameter.name] = self._get_parameter_override(parameter)
                consumed.add(parameter.name)
                continue

            class_type = reflector.get_parameter_class(parameter, hints, cls)
            if class_type is None:
                values[parameter.name] = self._resolve_primitive(cls, parameter)
            else:
                values[parameter.name] = self._resolve_class(parameter, class_type)

        # Overrides no named parameter claimed are forwarded through **kwargs.
        overrides = self._get_last_parameter_override()
        for parameter in parameters:
            if parameter.kind is parameter.VAR_KEYWORD and isinstance(overrides, Mapping):
                values[parameter.name] = {
                    name: value for name, value in overrides.items() if isinstance(name, str) and name not in consumed
                }

        return reflector.materialize_call(parameters, values)

    def _has_parameter_override(self, parameter: inspect.Parameter) -> bool:
        overrides = self._get_last_parameter_override()
        return isinstance(overrides, Mapping) and parameter.name in overrides

    def _get_parameter_override(self, parameter: inspect.Parameter) -> Any:
        return self._get_last_parameter_override()[parameter.name]

    def _get_last_parameter_override(self) -> Any:
        return self._with[-1] if self._with else {}

    def _resolve_primitive(self, cls: type, parameter: inspect.Parameter) -> Any:
        concrete = self._get_contextual_concrete(f"${parameter.name}")
        if concrete is not None:
            return reflector.invoke(concrete, self) if reflector.is_factory(concrete) else concrete

        if parameter.default is not parameter.empty:
            return parameter.default

        if parameter.kind is parameter.VAR_POSITIONAL:
            return []

        self._unresolvable_primitive(cls, parameter)

    def _resolve_class(self, parameter: inspect.Parameter, class_type: type) -> Any:
        try:
            if parameter.kind is parameter.VAR_POSITIONAL:
                return self._resolve_variadic_class(class_type)
            return self.make(class_type)
        except BindingResolutionError:
            # Optional parameters fall back to their defaults, variadics to nothing.
            if parameter.kind is parameter.VAR_POSITIONAL:
                return []
            if parameter.default is not parameter.empty:
                return parameter.default
            raise

    def _resolve_variadic_class(self, class_type: type) -> list[Any]:
        concrete = self._get_contextual_concrete(self.get_alias(class_type))

        if not isinstance(concrete, (list, tuple)):
            return [self.make(class_type)]

        return [self.resolve(abstract) for abstract in concrete]

    def _not_instantiable(self, concrete: type) -> NoReturn:
        name = reflector.qualified_name(concrete)
        if self._build_stack:
            previous = self._format_build_stack()
            msg = f"Target [{name}] is not instantiable while building [{previous}]."
        else:
            msg = f"Target [{name}] is not instantiable."

        raise BindingResolutionError(msg)

    def _circular_dependency(self, concrete: type) -> NoReturn:
        chain = self._format_build_stack([*self._build_stack, concrete])
        msg = f"Circular dependency detected while building [{chain}]."
        raise BindingResolutionError(msg)

    def _unresolvable_primitive(self, cls: type, parameter: inspect.Parameter) -> NoReturn:
        msg = f"Unresolvable dependency resolving [{parameter}] in class {reflector.qualified_name(cls)}"
        raise BindingResolutionError(msg)

    def _format_build_stack(self, stack: Sequence[type] | None = None) -> str:
        return ", ".join(reflector.qualified_name(c) for c in (self._build_stack if stack is None else stack))

    def _fire_resolving_callbacks(self, abstract: Any, obj: Any) -> None:
        self._fire_callback_array(obj, self._global_resolving_callbacks)
        self._fire_callback_array(obj, self._get_callbacks_for_type(abstract, obj, self._resolving_callbacks))
        self._fire_after_resolving_callbacks(abstract, obj)

    def _fire_after_resolving_callbacks(self, abstract: Any, obj: Any) -> None:
        self._fire_callback_array(obj, self._global_after_resolving_callbacks)
        self._fire_callback_array(obj, self._get_callbacks_for_type(abstract, obj, self._after_resolving_callbacks))

    def _get_callbacks_for_type(
        self,
        abstract: Any,
        obj: Any,
        callbacks_per_type: Mapping[Any, list[Callback]],
    ) -> list[Callback]:
        results: list[Callback] = []
        for type_, callbacks in callbacks_per_type.items():
            if type_ == abstract or self._is_instance_of(obj, type_):
                results.extend(callbacks)
        return results

    def _fire_callback_array(self, obj: Any, callbacks: Iterable[Callback]) -> None:
        for callback in callbacks:
            reflector.invoke(callback, obj, self)

    def _rebound(self, abstract: Any) -> None:
        callbacks = self._rebound_callbacks.get(abstract)
        if not callbacks:
            return

        logger.debug("Rebinding %s (%d callbacks)", reflector.qualified_name(abstract), len(callbacks))
        instance = self.make(abstract)
        for callback in callbacks:
            reflector.invoke(callback, self, instance)

    def _get_extenders(self, abstract: Any) -> list[Callback]:
        return list(self._extenders.get(self.get_alias(abstract), []))

    def _drop_stale_instances(self, abstract: Hashable) -> None:
        self._remove_abstract_alias(abstract)
        self._instances.pop(abstract, None)
        self._aliases.pop(abstract, None)

    def _remove_abstract_alias(self, searched: Hashable) -> None:
        if searched not in self._aliases:
            return

        for aliases in self._abstract_aliases.values():
            aliases[:] = [alias for alias in aliases if alias != searched]

    def _normalize(self, abstract: Any) -> Any:
        """Map a dotted string naming a class to that class, unless the string itself is registered."""
        if not isinstance(abstract, str) or "." not in abstract:
            return abstract
        if abstract in self._bindings or abstract in self._instances or abstract in self._aliases:
            return abstract

        if abstract not in self._class_keys:
            cls = reflector.load_class(abstract)
            self._class_keys[abstract] = abstract if cls is None else cls
        return self._class_keys[abstract]

    def _alias_chain_reaches(self, abstract: Hashable, target: Hashable) -> bool:
        while abstract in self._aliases:
            abstract = self._aliases[abstract]
            if abstract == target:
                return True
        return False

    @staticmethod
    def _is_instance_of(obj: Any, type_: Any) -> bool:
        if not inspect.isclass(type_):
            return False
        if reflector.is_protocol(type_) and not reflector.is_runtime_checkable_protocol(type_):
            return False
        return isinstance(obj, type_)

    @staticmethod
    def _parse_bind_method(method: str | tuple[Any, str]) -> str:
        if isinstance(method, (tuple, list)):
            return f"{reflector.qualified_name(method[0])}@{method[1]}"
        return method

    @staticmethod
    def _require(callback: Callable[..., Any] | None) -> Callable[..., Any]:
        if callback is None:
            msg = "A callback is required when an abstract is given."
            raise ValueError(msg)
        return callback
