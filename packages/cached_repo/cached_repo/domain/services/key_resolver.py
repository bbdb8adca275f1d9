"""Cache key derivation.

Keys live in three namespaces that can never overlap:

- type keys, ``type:<name>``, derived from a Python class
- explicit keys, ``key:<string>``, supplied by the caller
- scoped keys, ``scope:<scope>/<kind>:<name>``, grouped under an owner so
  they can be dropped together

A type's name is its ``__cache_key__`` class attribute when it declares one,
otherwise ``<module>.<qualname>``. The resolver remembers which class owns
each type key, so two different classes can never silently read each
other's cached data.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, NewType

from cached_repo.domain.exceptions import InvalidKeyError, KeyCollisionError
from cached_repo.infrastructure.logging import get_logger

logger = get_logger(__name__)

CacheKey = NewType("CacheKey", str)

TYPE_PREFIX = "type:"
EXPLICIT_PREFIX = "key:"
SCOPED_PREFIX = "scope:"

DEFAULT_MAX_KEY_LENGTH = 256


def _qualified_name(entity_type: type) -> str:
    return f"{entity_type.__module__}.{entity_type.__qualname__}"


@dataclass(frozen=True)
class ScopedKey:
    """A caller-supplied name grouped under an owning scope.

    Attributes:
        scope: Owner of the key, e.g. a type key
        name: Caller-supplied part, subject to the key length limit
        kind: Short identifier separating families of names within a scope
    """

    scope: str
    name: str
    kind: str = "key"


def scope_prefix(scope: str) -> str:
    """Common prefix of every scoped key under ``scope``."""
    # repr() quotes the scope, so no scope prefix is a prefix of another scope
    return f"{SCOPED_PREFIX}{scope!r}/"


class KeyResolver:
    """Derives canonical cache keys for types and caller-supplied strings."""

    def __init__(self, max_key_length: int = DEFAULT_MAX_KEY_LENGTH) -> None:
        """Initialize the resolver.

        Args:
            max_key_length: Longest accepted name, excluding the namespace prefix
        """
        self._max_key_length = max_key_length
        self._type_keys: dict[type, CacheKey] = {}
        self._owners: dict[CacheKey, type] = {}
        self._lock = threading.Lock()

    def register(self, entity_type: type, name: str) -> CacheKey:
        """Pin a type to a fixed key name.

        Registering the same type under the same name again is a no-op.

        Args:
            entity_type: Class to register
            name: Stable name for the class

        Returns:
            The type key

        Raises:
            InvalidKeyError: If ``entity_type`` is not a class or ``name`` is invalid
            KeyCollisionError: If the name or the type is already bound elsewhere
        """
        if not isinstance(entity_type, type):
            raise InvalidKeyError(entity_type, "only classes can be registered")

        key = CacheKey(TYPE_PREFIX + self._validate_name(name))
        with self._lock:
            self._bind(entity_type, key)
        return key

    def key_for(self, entity_type: type) -> CacheKey:
        """Derive the type key for a class.

        Args:
            entity_type: Class whose key to derive

        Returns:
            The same key for every call with the same class

        Raises:
            InvalidKeyError: If ``entity_type`` is not a class
            KeyCollisionError: If a different class already owns the derived key
        """
        if not isinstance(entity_type, type):
            raise InvalidKeyError(entity_type, "type keys can only be derived from classes")

        with self._lock:
            key = self._type_keys.get(entity_type)
            if key is not None:
                return key

            name = vars(entity_type).get("__cache_key__") or _qualified_name(entity_type)
            key = CacheKey(TYPE_PREFIX + self._validate_name(name))
            self._bind(entity_type, key)
            return key

    def explicit(self, key: str) -> CacheKey:
        """Place a caller-supplied key in the explicit namespace.

        Raises:
            InvalidKeyError: If the key is not a non-blank printable string
        """
        return CacheKey(EXPLICIT_PREFIX + self._validate_name(key))

    def scoped(self, key: ScopedKey) -> CacheKey:
        """Place a scoped key in the scoped namespace.

        Only ``key.name`` counts against the length limit.

        Raises:
            InvalidKeyError: If the scope is blank, the kind is not an
                identifier or the name is invalid
        """
        if not isinstance(key.scope, str) or not key.scope.strip():
            raise InvalidKeyError(key, "scope cannot be empty")
        if not isinstance(key.kind, str) or not key.kind.isidentifier():
            raise InvalidKeyError(key, "kind must be an identifier")
        name = self._validate_name(key.name)
        return CacheKey(f"{scope_prefix(key.scope)}{key.kind}:{name}")

    def resolve(self, key_or_type: Any) -> CacheKey:
        """Resolve a class, an explicit key string or a ``ScopedKey``."""
        if isinstance(key_or_type, type):
            return self.key_for(key_or_type)
        if isinstance(key_or_type, ScopedKey):
            return self.scoped(key_or_type)
        if isinstance(key_or_type, str):
            return self.explicit(key_or_type)
        raise InvalidKeyError(key_or_type, "expected a class, a string or a ScopedKey")

    @property
    def registered_types(self) -> dict[type, CacheKey]:
        """Snapshot of the type to key registry."""
        with self._lock:
            return dict(self._type_keys)

    def _bind(self, entity_type: type, key: CacheKey) -> None:
        # Caller holds self._lock
        owner = self._owners.get(key)
        if owner is not None and owner is not entity_type:
            raise KeyCollisionError(key, _qualified_name(owner), _qualified_name(entity_type))

        current = self._type_keys.get(entity_type)
        if current is not None and current != key:
            raise KeyCollisionError(current, _qualified_name(entity_type), key)

        self._type_keys[entity_type] = key
        self._owners[key] = entity_type
        logger.debug(
            "Cache key bound",
            extra={"cache_key": key, "entity_type": _qualified_name(entity_type)},
        )

    def _validate_name(self, name: Any) -> str:
        if not isinstance(name, str):
            raise InvalidKeyError(name, "key must be a string")
        if not name.strip():
            raise InvalidKeyError(name, "key cannot be empty")
        if len(name) > self._max_key_length:
            raise InvalidKeyError(
                name, f"key longer than {self._max_key_length} characters"
            )
        if not name.isprintable():
            raise InvalidKeyError(name, "key contains control characters")
        return name
