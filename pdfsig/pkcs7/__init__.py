from .signer_info import SignerInfo
from .signed_data import SignedData

__all__ = ["SignedData", "SignerInfo"]
