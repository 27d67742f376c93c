"""
Component resolution boundary.

Field and component nodes reference their widget either by a string token or
by a direct capability (a class or callable supplied by the rendering
layer). The engine never depends on which widget library backs a token: it
only needs something implementing ``resolve_component(token)``. The
``ComponentRegistry`` lookup table is the default implementation.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from formtree.core.types import ComponentRef
from formtree.exceptions import ComponentResolutionError

logger = logging.getLogger(__name__)


@runtime_checkable
class ComponentResolver(Protocol):
    """Anything able to turn a component token into a capability."""

    def resolve_component(self, token: str) -> Any: ...


class ComponentRegistry:
    """
    Lookup table from component tokens to capabilities.

    Example:
        registry = ComponentRegistry({"text": TextInput})
        registry.register("date", DatePicker)
        registry.resolve("text")      # -> TextInput
        registry.resolve(MyWidget)    # -> MyWidget (passed through)
    """

    def __init__(self, components: Mapping[str, Any] | None = None):
        self._components: dict[str, Any] = dict(components or {})

    def register(self, token: str, capability: Any) -> None:
        if token in self._components:
            logger.warning(
                "Component '%s' already registered to %r. Overwriting with %r.",
                token,
                self._components[token],
                capability,
            )
        self._components[token] = capability

    def component(self, token: str) -> Callable[[Any], Any]:
        """Decorator form of ``register``."""

        def decorator(capability: Any) -> Any:
            self.register(token, capability)
            return capability

        return decorator

    def unregister(self, token: str) -> None:
        self._components.pop(token, None)

    def is_registered(self, token: str) -> bool:
        return token in self._components

    @property
    def tokens(self) -> list[str]:
        return sorted(self._components)

    def resolve_component(self, token: str) -> Any:
        """
        Resolve a token.

        Raises:
            ComponentResolutionError: If no capability is registered for it
        """
        try:
            return self._components[token]
        except KeyError:
            raise ComponentResolutionError(token, self.tokens) from None

    def resolve(self, ref: ComponentRef | None) -> Any:
        """Resolve a reference: tokens are looked up, capabilities pass through."""
        return resolve_reference(self, ref)


def resolve_reference(resolver: ComponentResolver | Callable[[str], Any], ref: ComponentRef | None) -> Any:
    """
    Resolve ``ref`` through ``resolver``.

    ``resolver`` may be a ``ComponentResolver`` or a plain function
    ``token -> capability``. ``None`` and non-string references are returned
    unchanged.
    """
    if ref is None or not isinstance(ref, str):
        return ref
    if isinstance(resolver, ComponentResolver):
        return resolver.resolve_component(ref)
    return resolver(ref)
