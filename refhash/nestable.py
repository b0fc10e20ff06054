from typing import Any

from refhash.core import RefHash, ValueStrategy


class NestMappings(ValueStrategy):
    """
    Replaces a plain `dict` value with a container of the storing
    container's own class, built from the dict's items. The caller's dict
    is not modified. Values that are already containers are kept as they
    are.
    """

    def wrap(self, container: RefHash, value: Any) -> Any:
        if type(value) is dict:
            return container.__class__(value, coordinator=container.coordinator)
        return value


class NestableRefHash(RefHash):
    """
    A `RefHash` whose plain dict values become `NestableRefHash`es on store,
    so that `h[a][b] = 1` works with identity keys at every level.
    """

    __slots__ = ()

    value_strategy = NestMappings()
