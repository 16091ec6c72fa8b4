import hashlib
from collections.abc import Mapping, Sequence
from typing import Any, Callable

from typing_extensions import TypeAlias

HashObject = "hashlib._Hash"
HashFunction: TypeAlias = Callable[[], HashObject]

# /ByteRange values, a flat sequence of offset/length pairs
ByteRangeDescriptor: TypeAlias = Sequence[int]
# The declared entries of a signature dictionary, keyed by PDF name without
# the leading slash
SignatureFields: TypeAlias = Mapping[str, Any]
