from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, TypeVar

from typing_extensions import ParamSpec

from pdfsig.exceptions import (
    ByteRangeError,
    MalformedSignedDataError,
    NoSigningCertificateError,
    ParseError,
    RangeOutOfBoundsError,
    VerificationError,
)

if TYPE_CHECKING:
    from pdfsig.pdf.permissions import PermissionState
    from pdfsig.pdf.tsp import TimestampResult
    from pdfsig.x509 import Certificate, CertificateValidity

_P = ParamSpec("_P")
_T = TypeVar("_T")


class SignatureStatus(enum.Enum):
    """Whether a signature could be processed. This says nothing about the
    cryptographic outcome, which is reported separately in the
    :class:`VerificationRecord`. Only the first error is reported.
    """

    OK = enum.auto()
    """The signature was parsed and verified; see the record for the outcome."""
    MALFORMED_SIGNED_DATA = enum.auto()
    """The signed-data blob could not be parsed."""
    RANGE_OUT_OF_BOUNDS = enum.auto()
    """The byte range points outside the file."""
    NO_SIGNING_CERTIFICATE = enum.auto()
    """The certificate of the signer is neither embedded nor supplied."""
    PARSE_ERROR = enum.auto()
    """The signature dictionary or its byte range could not be read."""
    VERIFY_ERROR = enum.auto()
    """The signature could not be verified for another reason."""
    UNKNOWN_ERROR = enum.auto()
    """An unknown error occurred during parsing or verifying."""

    @classmethod
    def call(
        cls, function: Callable[_P, _T], *args: _P.args, **kwargs: _P.kwargs
    ) -> tuple[SignatureStatus, Exception | None, _T | None]:
        """Calls the function and converts the error it raises, if any, into a
        status. Returns the status, the error and the return value of the function.
        """
        try:
            result = function(*args, **kwargs)
        except RangeOutOfBoundsError as exc:
            return cls.RANGE_OUT_OF_BOUNDS, exc, None
        except ByteRangeError as exc:
            return cls.PARSE_ERROR, exc, None
        except MalformedSignedDataError as exc:
            return cls.MALFORMED_SIGNED_DATA, exc, None
        except NoSigningCertificateError as exc:
            return cls.NO_SIGNING_CERTIFICATE, exc, None
        except ParseError as exc:
            return cls.PARSE_ERROR, exc, None
        except VerificationError as exc:
            return cls.VERIFY_ERROR, exc, None
        except Exception as exc:
            return cls.UNKNOWN_ERROR, exc, None
        return cls.OK, None, result


class SignatureWarning(enum.Enum):
    """Anomalies that do not prevent verification, but that a reader of the result
    should know about.
    """

    CERTIFICATION_NOT_FIRST = "certification_not_first"
    """A signature other than the first declared itself a certification
    signature. It is treated as an approval signature.
    """
    PERMISSIONS_LOOSENED = "permissions_loosened"
    """A signature declared permissions that an earlier signature had already
    revoked. The earlier restriction stays in effect.
    """
    UNTRUSTED_TIMESTAMP = "untrusted_timestamp"
    """A timestamp token is present but invalid, or not bound to the signature, so
    the signing time can not be verified.
    """


class SigningTimeSource(enum.Enum):
    """Where the signing time used for the certificate check came from."""

    TIMESTAMP = "timestamp"
    """A valid timestamp token."""
    SIGNED_ATTRIBUTE = "signed_attribute"
    """The signing-time attribute, signed by the signer but not corroborated."""
    SIGNATURE_DICTIONARY = "signature_dictionary"
    """The /M entry of the signature dictionary, which is not signed at all."""
    NONE = "none"


@dataclass(frozen=True)
class VerificationRecord:
    """The verification result of one signature of a document. Records are
    produced in revision order.
    """

    signature_name: str
    integrity_ok: bool
    """The digest of the covered bytes equals the signed digest."""
    authenticity_ok: bool
    """The signature verifies with the public key of the signer."""
    covers_whole_document: bool
    """The signature covers the document as it is now: there are no later
    revisions.
    """
    revision_index: int
    """The revision of this signature, counting from 1."""
    total_revisions: int
    certificate_valid_at_signing: CertificateValidity | None
    """The validity of the signer certificate at the signing time, if known."""
    certificate_valid_now: CertificateValidity | None
    timestamp_result: TimestampResult | None
    permission_state_after: PermissionState

    status: SignatureStatus = SignatureStatus.OK
    error: str | None = None
    warnings: tuple[SignatureWarning, ...] = ()
    is_last_signed_revision: bool = False
    """No later signature covers a larger part of the document."""
    is_document_timestamp: bool = False
    sub_filter: str | None = None
    digest_algorithm: str | None = None
    encryption_algorithm: str | None = None
    signer_certificate: Certificate | None = None
    signer_name: str | None = None
    signing_time: datetime.datetime | None = None
    signing_time_source: SigningTimeSource = SigningTimeSource.NONE
    reason: str | None = None
    location: str | None = None
    contact_info: str | None = None
    covered_length: int | None = None

    @property
    def is_valid(self) -> bool:
        """The signature was processed, and both integrity and authenticity hold."""
        return self.status is SignatureStatus.OK and (
            self.integrity_ok and self.authenticity_ok
        )
