from .certificates import (
    Certificate,
    CertificateName,
    CertificateValidity,
    check_validity,
)
from .store import CertificateStore

__all__ = [
    "Certificate",
    "CertificateName",
    "CertificateStore",
    "CertificateValidity",
    "check_validity",
]
