class PdfSigError(Exception):
    pass


class ParseError(PdfSigError):
    """Raised when the input is not a valid signed document or structure."""


class ByteRangeError(ParseError):
    """Raised when a /ByteRange descriptor is structurally malformed."""


class RangeOutOfBoundsError(ByteRangeError):
    """Raised when a declared byte range points outside the actual file."""


class MalformedSignedDataError(ParseError):
    """Raised when the signed-data blob of a signature cannot be parsed. This is a
    structural problem, not a cryptographic failure.
    """


class TimestampParseError(MalformedSignedDataError):
    pass


class PdfObjectError(ParseError):
    """Raised when the PDF object syntax around a signature cannot be read."""


class VerificationError(PdfSigError):
    pass


class NoSigningCertificateError(VerificationError):
    """Raised when no certificate can be found that matches the signer identifier
    of a SignerInfo.
    """


class CertificateVerificationError(VerificationError):
    pass
