import numbers
from typing import Any, Tuple, TypeAlias

# Keys of these types live in the scalar store and compare by value,
# with Python's own dict equality (1 == 1.0 == True, but 1 != "1").
SCALAR_TYPES = (str, bytes, numbers.Number, type(None))

# Tuples and frozensets made only of scalars compare by value as well.
SCALAR_COMPOSITES = (tuple, frozenset)

IdentityToken: TypeAlias = Tuple[int, int]


def is_identity_key(key: Any) -> bool:
    if isinstance(key, SCALAR_TYPES):
        return False
    if isinstance(key, SCALAR_COMPOSITES):
        return any(is_identity_key(item) for item in key)
    return True


class IdentityResolver:
    """
    Turns a key object into an `IdentityToken`.

    A token is `(generation, id(key))`. `id()` is unique among objects that
    are alive at the same time, and the container owns every key it stores,
    so a token cannot be reused while its entry exists. The generation
    changes when the world is duplicated; tokens from an older generation
    never match again until the owning container is rehashed.
    """

    __slots__ = ('_generation',)

    def __init__(self, generation: int = 0):
        self._generation = generation

    @property
    def generation(self) -> int:
        return self._generation

    def advance(self) -> int:
        self._generation += 1
        return self._generation

    def resolve(self, key: Any) -> IdentityToken:
        assert is_identity_key(key), f"Cannot resolve identity of scalar key {key!r}"
        return (self._generation, id(key))

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(generation={self._generation})"
