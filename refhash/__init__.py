from refhash.core import ABSENT, KeepValue, RefHash, ValueStrategy
from refhash.duplication import DegradedDuplicationSupport, DuplicationCoordinator, default_coordinator
from refhash.identity import IdentityResolver, is_identity_key
from refhash.nestable import NestableRefHash, NestMappings
from refhash.serialize import FORMAT_TAG, VersionMismatch, freeze, thaw

__all__ = [
    'ABSENT', 'RefHash', 'NestableRefHash',
    'ValueStrategy', 'KeepValue', 'NestMappings',
    'IdentityResolver', 'is_identity_key',
    'DuplicationCoordinator', 'DegradedDuplicationSupport', 'default_coordinator',
    'FORMAT_TAG', 'VersionMismatch', 'freeze', 'thaw',
]
