from __future__ import annotations

from collections.abc import Sequence
from functools import cached_property
from typing import Any, cast

from asn1crypto import cms, core
from asn1crypto.core import Asn1Value
from typing_extensions import Self

from pdfsig._typing import HashFunction
from pdfsig.asn1.helpers import load_content_info
from pdfsig.exceptions import MalformedSignedDataError
from pdfsig.pkcs7 import signer_info
from pdfsig.x509.certificates import Certificate
from pdfsig.x509.store import CertificateStore


class SignedData:
    """A generic SignedData object. The SignedData object is defined in RFC2315 and
    RFC5652 (amongst others) and defines data that is signed by one or more signers.

    It is based on the following ASN.1 object (as per RFC5652)::

        SignedData ::= SEQUENCE {
          version CMSVersion,
          digestAlgorithms DigestAlgorithmIdentifiers,
          encapContentInfo EncapsulatedContentInfo,
          certificates [0] IMPLICIT CertificateSet OPTIONAL,
          crls [1] IMPLICIT RevocationInfoChoices OPTIONAL,
          signerInfos SignerInfos
        }

    The content may be absent (a *detached* signature), in which case the signed
    data is provided out of band, e.g. by the byte range of a PDF signature.

    Structures in a signature blob must be signed by exactly one signer, which is
    available in :attr:`signer_info`. Additionally, :attr:`certificates` contains
    the certificates the signer chose to embed.
    """

    _expected_content_type: str | None = None
    _parse_error: type[MalformedSignedDataError] = MalformedSignedDataError
    _signerinfo_class: type[signer_info.SignerInfo] = signer_info.SignerInfo

    def __init__(self, asn1: cms.SignedData):
        """
        :param asn1: The ASN.1 structure of the SignedData object
        """
        self.asn1 = asn1
        try:
            self._validate_asn1()
        except (ValueError, TypeError, KeyError) as e:
            raise self._parse_error(f"SignedData could not be parsed: {e}")
        except MalformedSignedDataError as e:
            if isinstance(e, self._parse_error):
                raise
            raise self._parse_error(str(e))

    @classmethod
    def from_envelope(cls, data: bytes, *args: Any, **kwargs: Any) -> Self:
        """Loads a :class:`SignedData` object from raw data that contains ContentInfo.
        Trailing zero padding is permitted.

        :param data: The bytes to parse
        :raises MalformedSignedDataError: if the data is not a SignedData structure
        """
        content_info = load_content_info(data, location=cls.__name__)
        try:
            content = content_info["content"]
        except (ValueError, TypeError) as e:
            raise MalformedSignedDataError(f"SignedData could not be parsed: {e}")
        return cls(content, *args, **kwargs)

    def _validate_asn1(self) -> None:
        if (
            self._expected_content_type is not None
            and self.content_type != self._expected_content_type
        ):
            raise MalformedSignedDataError(
                f"SignedData.encapContentInfo contains {self.content_type},"
                f" expected {self._expected_content_type}"
            )

        if len(self.asn1["signer_infos"]) != 1:
            raise MalformedSignedDataError(
                "SignedData.signerInfos must contain exactly 1 signer,"
                f" not {len(self.asn1['signer_infos'])}"
            )

        # force parsing of the signer info and the certificates, so that any
        # lazy parsing errors surface here
        self.signer_info  # noqa: B018
        self.certificates  # noqa: B018

    @property
    def digest_algorithm(self) -> HashFunction:
        """The digest algorithm, i.e. the hash algorithm, that is used by the signer
        of the data. This is the algorithm of the :class:`SignerInfo`, as
        ``SignedData.digestAlgorithms`` is merely a hint.
        """
        return self.signer_info.digest_algorithm

    @property
    def content_type(self) -> str:
        """The class of the type of the content in the object."""
        return cast(str, self.asn1["encap_content_info"]["content_type"].native)

    @property
    def _real_content(self) -> Asn1Value:
        return self.asn1["encap_content_info"]["content"]

    @property
    def is_detached(self) -> bool:
        return isinstance(self._real_content, core.Void)

    @property
    def content_asn1(self) -> Asn1Value:
        """The actual content, as parsed by the :attr:`content_type` spec."""
        if hasattr(self._real_content, "parsed"):
            return self._real_content.parsed
        else:
            return self._real_content

    @property
    def content_bytes(self) -> bytes:
        """The encapsulated content as it is hashed, adhering to RFC5652, 5.4: the
        identifier (tag) and length of the OCTET STRING are not included.
        """
        if self.is_detached:
            raise MalformedSignedDataError("SignedData does not encapsulate content")
        return bytes(self._real_content)

    @cached_property
    def certificates(self) -> CertificateStore:
        """A list of all included certificates in the SignedData."""
        if isinstance(self.asn1["certificates"], core.Void):
            return CertificateStore()
        return CertificateStore(
            [
                Certificate(cert)
                for cert in self.asn1["certificates"]
                if not isinstance(cert, cms.CertificateChoices)
                or cert.name == "certificate"
            ]
        )

    @cached_property
    def signer_infos(self) -> Sequence[signer_info.SignerInfo]:
        """A list of all included :class:`signer_info.SignerInfo` objects"""
        return [
            self._signerinfo_class(si, parent=self) for si in self.asn1["signer_infos"]
        ]

    @property
    def signer_info(self) -> signer_info.SignerInfo:
        """The included :class:`signer_info.SignerInfo` object."""
        return self.signer_infos[0]

    def signer_certificate(
        self, certificate_store: CertificateStore | None = None
    ) -> Certificate:
        """Resolves the certificate of the signer from the embedded certificates,
        falling back to the ``certificate_store`` supplied by the caller.

        :raises NoSigningCertificateError: if the certificate is not available
        """
        stores = [self.certificates]
        if certificate_store is not None:
            stores.append(certificate_store)
        return self.signer_info.find_certificate(*stores)

    def get_content_digest(self) -> bytes:
        """Returns the digest of the encapsulated content, using the digest algorithm
        of the signer.
        """
        hasher = self.digest_algorithm()
        hasher.update(self.content_bytes)
        return hasher.digest()
