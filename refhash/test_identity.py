import decimal
import fractions

import pytest

from refhash.identity import IdentityResolver, is_identity_key


@pytest.mark.parametrize("key", ['a', '', b'a', 0, 1, 2.5, 1j, True, None,
                                 decimal.Decimal('1.5'), fractions.Fraction(1, 3),
                                 (), (1, 'a'), ((1, 2), (None, b'x')), frozenset(), frozenset({1, 'a'})])
def test_scalar_keys(key):
    assert not is_identity_key(key)


@pytest.mark.parametrize("key", [[], {}, set(), ([],), (1, [2]), frozenset([object()]), ((1, []),), object(), len, pytest, int])
def test_identity_keys(key):
    assert is_identity_key(key)


def test_resolve_distinguishes_live_objects():
    resolver = IdentityResolver()
    a, b = [], []
    assert resolver.resolve(a) == resolver.resolve(a)
    assert resolver.resolve(a) != resolver.resolve(b)


def test_advance_invalidates_tokens():
    resolver = IdentityResolver()
    key = []
    before = resolver.resolve(key)
    assert resolver.advance() == 1
    assert resolver.generation == 1
    assert resolver.resolve(key) != before


def test_resolving_scalar_is_a_contract_violation():
    with pytest.raises(AssertionError):
        IdentityResolver().resolve('scalar')


def test_repr():
    assert repr(IdentityResolver(3)) == "IdentityResolver(generation=3)"
