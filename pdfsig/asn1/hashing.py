from __future__ import annotations

import hashlib
from typing import Iterable, cast

from asn1crypto import algos
from cryptography.hazmat.primitives import hashes

from pdfsig._typing import HashFunction
from pdfsig.exceptions import MalformedSignedDataError

# this list must be in the order of worst to best
ACCEPTED_DIGEST_ALGORITHMS = ("md5", "sha1", "sha224", "sha256", "sha384", "sha512")


def _get_digest_algorithm(
    algorithm: algos.DigestAlgorithm,
    location: str,
    acceptable: Iterable[str] = ACCEPTED_DIGEST_ALGORITHMS,
) -> HashFunction:
    alg = algorithm["algorithm"].native
    if alg not in acceptable:
        raise MalformedSignedDataError(
            f"{location} must be one of {list(acceptable)}, not {alg}"
        )
    if algorithm["parameters"].native:
        raise MalformedSignedDataError(
            f"{location} has parameters set, which is unexpected"
        )
    return cast(HashFunction, getattr(hashlib, alg))


def get_crypto_hash(algorithm: HashFunction | str) -> hashes.HashAlgorithm:
    """Returns the :mod:`cryptography` counterpart of a hashlib constructor (or of
    its name), for use in public key operations.
    """
    name = algorithm if isinstance(algorithm, str) else algorithm().name
    try:
        return cast(hashes.HashAlgorithm, getattr(hashes, name.upper())())
    except AttributeError:
        raise MalformedSignedDataError(f"Unsupported digest algorithm {name}")


def compute_digest(algorithm: HashFunction, data: bytes) -> bytes:
    hasher = algorithm()
    hasher.update(data)
    return hasher.digest()
