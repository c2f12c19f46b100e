from typing import Any, Callable, Dict, KeysView, Optional, Type, TypeVar

T = TypeVar("T")


class Registry:
    """Maps names (provider ids, file extensions) to component classes."""

    def __init__(self, name: str):
        self._name = name
        self._components: Dict[str, Type[Any]] = {}

    def register(self, *names: str) -> Callable[[Type[T]], Type[T]]:
        """
        Class decorator. One class may be registered under several names,
        e.g. a YAML checker under both ".yaml" and ".yml".

        Raises:
            ValueError: If any of the names is taken.
        """
        def decorator(cls: Type[T]) -> Type[T]:
            for name in names:
                if name in self._components:
                    raise ValueError(f"Component '{name}' already registered in '{self._name}' registry.")
                self._components[name] = cls
            return cls
        return decorator

    def get(self, name: str) -> Type[Any]:
        if name not in self._components:
            raise KeyError(f"Component '{name}' not found in '{self._name}' registry.")
        return self._components[name]

    def find(self, name: str) -> Optional[Type[Any]]:
        """Like get(), but returns None for an unknown name."""
        return self._components.get(name)

    def create(self, name: str, *args: Any, **kwargs: Any) -> Any:
        """Looks up `name` and instantiates it with the given arguments."""
        return self.get(name)(*args, **kwargs)

    def __contains__(self, name: str) -> bool:
        return name in self._components

    def keys(self) -> KeysView[str]:
        return self._components.keys()


provider_registry = Registry("provider")
preflight_registry = Registry("preflight")
