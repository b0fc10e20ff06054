from typing import Any, Callable, Iterable, List, Optional, Tuple

FORMAT_TAG = "refhash.RefHash/0.01"


class VersionMismatch(ValueError):
    pass


def check_tag(tag: Any) -> None:
    if tag != FORMAT_TAG:
        raise VersionMismatch(
            f"incompatible versions of RefHash between freeze and thaw: "
            f"expected {FORMAT_TAG!r}, got {tag!r}"
        )


def freeze(container) -> Tuple[str, List[Tuple[Any, Any]]]:
    """
    Flattens `container` into `(FORMAT_TAG, [(key, value), ...])`.

    Identity entries carry the key object itself, never its token, since a
    token means nothing outside the process that computed it.
    """
    return FORMAT_TAG, list(container.iterate())


def thaw(tag: str, entries: Iterable[Tuple[Any, Any]], factory: Optional[Callable[[], Any]] = None):
    check_tag(tag)

    if factory is None:
        from refhash.core import RefHash
        factory = RefHash

    container = factory()
    for key, value in entries:
        container.store(key, value)
    return container
