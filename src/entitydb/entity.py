"""
Entity declaration and the entity mapping registry.

An entity is a class whose instances correspond one-to-one with rows of a
table. The registry holds, for every entity that needs one, a translation
table from database column name to attribute name:

    @entity
    @dataclass
    class Order:
        id: int = None
        createdAt: datetime.datetime = None          # column created_at
        total: float = column('order_total', default=0.0)

    registry = EntityRegistry.build([Order])
    registry.get(Order)
    # mappingproxy({'created_at': 'createdAt', 'order_total': 'total'})

Entities whose attributes all match their columns have no entry at all.
The registry is built once and is read-only afterwards.
"""
import dataclasses
import importlib
import inspect
import logging
import pkgutil
import re
import threading
import typing
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType, ModuleType
from typing import Any

from entitydb.exceptions import InitializationError

__all__ = [
    'entity',
    'column',
    'is_entity',
    'own_fields',
    'camel_to_underscore',
    'find_entities',
    'EntityRegistry',
    'init_entity_registry',
    'get_entity_registry',
]

logger = logging.getLogger(__name__)

COLUMN_METADATA_KEY = 'column'

_CAMEL_BOUNDARY = re.compile(r'(?<!^)([A-Z])')


def camel_to_underscore(name: str) -> str:
    """Convert a camel-case attribute name into an underscore column name.

    >>> camel_to_underscore('userName')
    'user_name'
    >>> camel_to_underscore('createdAt')
    'created_at'
    >>> camel_to_underscore('id')
    'id'
    """
    return _CAMEL_BOUNDARY.sub(r'_\1', name).lower()


def entity(cls: type | None = None, *, table: str | None = None):
    """Tag a class as an entity.

    Supports both @entity and @entity(table='orders') syntax.
    """
    def decorator(c: type) -> type:
        c.__entity__ = True
        c.__table__ = table or c.__dict__.get('__table__') or camel_to_underscore(c.__name__)
        return c

    if cls is None:
        return decorator
    return decorator(cls)


def column(name: str, **kwargs: Any) -> Any:
    """Dataclass field carrying an explicit column name.
    """
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[COLUMN_METADATA_KEY] = name
    return dataclasses.field(metadata=metadata, **kwargs)


def is_entity(obj: Any) -> bool:
    """Check if obj is a class tagged with @entity (tag not inherited)."""
    return inspect.isclass(obj) and obj.__dict__.get('__entity__', False) is True


def _is_classvar(annotation: Any) -> bool:
    if isinstance(annotation, str):
        return annotation.startswith(('ClassVar', 'typing.ClassVar'))
    return annotation is typing.ClassVar or typing.get_origin(annotation) is typing.ClassVar


def own_fields(cls: type) -> list[tuple[str, str | None]]:
    """Own (non-inherited) attributes of a class with their column override.

    Returns (attribute name, column override or None) in declaration order.
    """
    annotations = inspect.get_annotations(cls)
    dc_fields = cls.__dict__.get('__dataclass_fields__', {})
    result = []
    for name, annotation in annotations.items():
        if _is_classvar(annotation):
            continue
        override = None
        if name in dc_fields:
            override = dc_fields[name].metadata.get(COLUMN_METADATA_KEY)
        result.append((name, override))
    return result


def _iter_modules(target: str | ModuleType) -> Iterator[ModuleType]:
    module = importlib.import_module(target) if isinstance(target, str) else target
    yield module
    if hasattr(module, '__path__'):
        for info in pkgutil.walk_packages(module.__path__, prefix=f'{module.__name__}.'):
            yield importlib.import_module(info.name)


def find_entities(*targets: str | ModuleType) -> list[type]:
    """Find the entity classes defined in packages or modules.

    Packages are walked recursively. Classes are returned in module order,
    then definition order; classes only imported into a module are skipped.
    """
    found: list[type] = []
    for target in targets:
        for module in _iter_modules(target):
            for _, obj in inspect.getmembers(module, is_entity):
                if obj.__module__ == module.__name__ and obj not in found:
                    found.append(obj)
    logger.debug(f'Found {len(found)} entity classes')
    return found


def _field_map(entity_type: type) -> dict[str, str]:
    fmap: dict[str, str] = {}
    fields = own_fields(entity_type)
    names = {name for name, _ in fields}
    for field_name, override in fields:
        column_name = override or camel_to_underscore(field_name)
        if column_name == field_name:
            continue
        if column_name in names:
            raise InitializationError(
                f'Column {column_name!r} of {entity_type.__name__} is both an attribute '
                f'and the column of {field_name!r}')
        if fmap.get(column_name, field_name) != field_name:
            raise InitializationError(
                f'Column {column_name!r} of {entity_type.__name__} is mapped to both '
                f'{fmap[column_name]!r} and {field_name!r}')
        fmap[column_name] = field_name
    return fmap


class EntityRegistry(Mapping):
    """Read-only map of entity class to its column translation table.
    """

    def __init__(self, entity_map: Mapping[type, Mapping[str, str]] | None = None) -> None:
        self._entity_map = MappingProxyType({
            cls: MappingProxyType(dict(fmap)) for cls, fmap in (entity_map or {}).items()
        })

    @classmethod
    def build(cls, entity_types: Iterable[type]) -> 'EntityRegistry':
        """Build the registry from the given entity classes.

        Any failure is raised as InitializationError; no partial registry
        is ever returned.
        """
        try:
            entity_map = {}
            for entity_type in entity_types:
                fmap = _field_map(entity_type)
                if fmap:
                    entity_map[entity_type] = fmap
        except InitializationError:
            raise
        except Exception as e:
            logger.error(f'Error building entity registry: {e}')
            raise InitializationError(f'Error building entity registry: {e}') from e
        logger.debug(f'Entity registry built with {len(entity_map)} mapped entities')
        return cls(entity_map)

    @classmethod
    def discover(cls, *targets: str | ModuleType | type) -> 'EntityRegistry':
        """Build the registry from entity classes and the packages or modules to scan.
        """
        entity_types = [t for t in targets if inspect.isclass(t)]
        packages = [t for t in targets if not inspect.isclass(t)]
        try:
            if packages:
                entity_types.extend(c for c in find_entities(*packages) if c not in entity_types)
        except Exception as e:
            logger.error(f'Error discovering entities in {targets}: {e}')
            raise InitializationError(f'Error discovering entities: {e}') from e
        return cls.build(entity_types)

    def get(self, entity_type: type, default: Any = None) -> Mapping[str, str] | None:
        """Translation table for an entity, None when no translation is needed.
        """
        return self._entity_map.get(entity_type, default)

    def __getitem__(self, entity_type: type) -> Mapping[str, str]:
        return self._entity_map[entity_type]

    def __iter__(self) -> Iterator[type]:
        return iter(self._entity_map)

    def __len__(self) -> int:
        return len(self._entity_map)

    def __repr__(self) -> str:
        names = ', '.join(cls.__name__ for cls in self._entity_map)
        return f'EntityRegistry({names})'


_registry: EntityRegistry | None = None
_registry_lock = threading.Lock()
def init_entity_registry(*targets: str | ModuleType | type) -> EntityRegistry:
    """Build the process-wide registry once from packages, modules or classes.
    """
    global _registry
    with _registry_lock:
        if _registry is not None:
            raise InitializationError('Entity registry is already initialized')
        _registry = EntityRegistry.discover(*targets)
        return _registry


def get_entity_registry() -> EntityRegistry:
    """Return the process-wide registry, empty when never initialized."""
    return _registry if _registry is not None else EntityRegistry()


def reset_entity_registry() -> None:
    """Forget the process-wide registry. Intended for tests."""
    global _registry
    with _registry_lock:
        _registry = None
