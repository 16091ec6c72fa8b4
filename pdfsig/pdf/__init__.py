from .byte_range import ByteRange, CoveredBytes
from .dictionary import SignatureDictionary
from .parsers import SignedDataParser, get_parser
from .permissions import (
    DeclaredRestrictions,
    FieldLock,
    FieldLockAction,
    MDPPerm,
    PermissionState,
    narrow,
)
from .signed_data import PdfSignature
from .signed_document import (
    Conformance,
    InMemorySignedDocument,
    PdfFile,
    SignedDocument,
)
from .tsp import TimestampResult, TimestampSignedData, validate_timestamp
from .verification_result import (
    SignatureStatus,
    SignatureWarning,
    SigningTimeSource,
    VerificationRecord,
)
from .verifier import FileResult, verify_document, verify_files

__all__ = [
    "ByteRange",
    "Conformance",
    "CoveredBytes",
    "DeclaredRestrictions",
    "FieldLock",
    "FieldLockAction",
    "FileResult",
    "InMemorySignedDocument",
    "MDPPerm",
    "PdfFile",
    "PdfSignature",
    "PermissionState",
    "SignatureDictionary",
    "SignatureStatus",
    "SignatureWarning",
    "SignedDataParser",
    "SignedDocument",
    "SigningTimeSource",
    "TimestampResult",
    "TimestampSignedData",
    "VerificationRecord",
    "get_parser",
    "narrow",
    "validate_timestamp",
    "verify_document",
    "verify_files",
]
