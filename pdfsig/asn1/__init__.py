from .hashing import ACCEPTED_DIGEST_ALGORITHMS, compute_digest, get_crypto_hash
from .helpers import accuracy_to_python, load_content_info

__all__ = [
    "ACCEPTED_DIGEST_ALGORITHMS",
    "accuracy_to_python",
    "compute_digest",
    "get_crypto_hash",
    "load_content_info",
]
