from __future__ import annotations

import datetime
import enum
import logging
import re
from collections.abc import Iterable, Iterator
from functools import cached_property
from typing import Any, ClassVar, cast, overload

import asn1crypto.pem
import asn1crypto.x509
from asn1crypto import algos, cms
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed

from pdfsig._typing import HashFunction
from pdfsig.asn1.hashing import get_crypto_hash
from pdfsig.exceptions import CertificateVerificationError

logger = logging.getLogger(__name__)


class CertificateValidity(enum.Enum):
    """The position of an instant relative to the validity window of a
    certificate.
    """

    VALID = "valid"
    """The instant lies within ``[notBefore, notAfter]``."""
    EXPIRED = "expired"
    """The instant lies after ``notAfter``."""
    NOT_YET_VALID = "not_yet_valid"
    """The instant lies before ``notBefore``."""


def _as_utc(instant: datetime.datetime) -> datetime.datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=datetime.timezone.utc)
    return instant


def check_validity(
    certificate: Certificate, instant: datetime.datetime
) -> CertificateValidity:
    """Compares ``instant`` against the validity window of the certificate. Both
    boundaries are inclusive. Naive datetimes are taken to be in UTC.

    This does not build or verify any chain of trust.
    """
    instant = _as_utc(instant)
    if instant < _as_utc(certificate.valid_from):
        return CertificateValidity.NOT_YET_VALID
    if instant > _as_utc(certificate.valid_to):
        return CertificateValidity.EXPIRED
    return CertificateValidity.VALID


class Certificate:
    """Representation of a certificate. It is built from an ASN.1 structure."""

    asn1: asn1crypto.x509.Certificate

    def __init__(self, asn1: asn1crypto.x509.Certificate | cms.CertificateChoices):
        """
        :param asn1: The ASN.1 structure
        """

        self.asn1 = asn1

        if isinstance(self.asn1, cms.CertificateChoices):
            if self.asn1.name != "certificate":
                raise NotImplementedError(
                    f"This is not a certificate, but a {self.asn1.name}"
                )
            self.asn1 = self.asn1.chosen

    @property
    def serial_number(self) -> int:
        """The full integer serial number of the certificate"""
        return cast(int, self.asn1.serial_number)

    @property
    def issuer(self) -> CertificateName:
        """The :class:`CertificateName` for the issuer."""
        return CertificateName(self.asn1.issuer)

    @property
    def subject(self) -> CertificateName:
        """The :class:`CertificateName` for the subject."""
        return CertificateName(self.asn1.subject)

    @property
    def valid_from(self) -> datetime.datetime:
        """The start of the validity window (``notBefore``)."""
        return cast(datetime.datetime, self.asn1.not_valid_before)

    @property
    def valid_to(self) -> datetime.datetime:
        """The end of the validity window (``notAfter``)."""
        return cast(datetime.datetime, self.asn1.not_valid_after)

    @property
    def public_key_algorithm(self) -> str:
        return cast(str, self.asn1.public_key.algorithm)

    @cached_property
    def public_key(self) -> Any:
        """The subject public key, loaded as a :mod:`cryptography` key object.

        :raises CertificateVerificationError: if the key type is not supported
        """
        try:
            return serialization.load_der_public_key(self.asn1.public_key.dump())
        except (ValueError, UnsupportedAlgorithm) as e:
            raise CertificateVerificationError(
                f"Unable to load the public key of {self}: {e}"
            )

    def __str__(self) -> str:
        return f"{self.subject.dn} (serial:{self.serial_number})"

    def __hash__(self) -> int:
        return hash((self.issuer, self.serial_number, self.sha256_fingerprint))

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Certificate)
            and self.sha256_fingerprint == other.sha256_fingerprint
        )

    @classmethod
    def from_der(cls, content: bytes) -> Certificate:
        """Load the Certificate object from DER-encoded data"""
        return cls(asn1crypto.x509.Certificate.load(content))

    @classmethod
    def from_pem(cls, content: bytes) -> Certificate:
        """Reads a Certificate from a PEM formatted file."""
        return next(cls.from_pems(content))

    @classmethod
    def from_pems(cls, content: bytes) -> Iterator[Certificate]:
        """Reads all Certificates from a PEM formatted file."""
        for _type_name, _headers, der_bytes in asn1crypto.pem.unarmor(
            content, multiple=True
        ):
            yield cls.from_der(der_bytes)

    @cached_property
    def to_der(self) -> bytes:
        """Returns the DER-encoded data from this certificate."""
        return cast(bytes, self.asn1.dump())

    @cached_property
    def sha256_fingerprint(self) -> str:
        return cast(str, self.asn1.sha256_fingerprint).replace(" ", "").lower()

    def validity_at(self, instant: datetime.datetime) -> CertificateValidity:
        """Alias for :func:`check_validity`"""
        return check_validity(self, instant)

    def verify_signature(
        self,
        signature: bytes,
        data: bytes,
        algorithm: HashFunction,
        signature_algorithm: algos.SignedDigestAlgorithm | None = None,
        *,
        prehashed: bool = False,
    ) -> None:
        """Verifies whether the signature bytes match the data using the public key
        of this certificate. Supports RSA (PKCS#1 v1.5 and PSS), DSA, ECDSA and EdDSA
        keys.

        :param signature: The signature to verify
        :param data: The data that must be verified, or its digest if ``prehashed``
        :param algorithm: The hashing algorithm to use
        :param signature_algorithm: The signature mechanism as declared by the
            signer. When omitted, it is derived from the key type.
        :param prehashed: Indicates that ``data`` is already a digest
        :raises CertificateVerificationError: when the signature does not verify
        """
        public_key = self.public_key
        mechanism = (
            signature_algorithm.signature_algo
            if signature_algorithm is not None
            else self._default_mechanism()
        )

        try:
            hash_name = (
                signature_algorithm.hash_algo
                if signature_algorithm is not None
                else algorithm().name
            )
        except ValueError:
            hash_name = algorithm().name

        def _hash() -> Any:
            crypto_hash = get_crypto_hash(hash_name)
            return Prehashed(crypto_hash) if prehashed else crypto_hash

        try:
            if mechanism == "rsassa_pkcs1v15" and isinstance(
                public_key, rsa.RSAPublicKey
            ):
                public_key.verify(signature, data, padding.PKCS1v15(), _hash())
            elif mechanism == "rsassa_pss" and isinstance(
                public_key, rsa.RSAPublicKey
            ):
                assert signature_algorithm is not None
                params = signature_algorithm["parameters"]
                pss_hash = get_crypto_hash(params["hash_algorithm"]["algorithm"].native)
                mgf_hash = get_crypto_hash(
                    params["mask_gen_algorithm"]["parameters"]["algorithm"].native
                )
                pss_padding = padding.PSS(
                    mgf=padding.MGF1(mgf_hash),
                    salt_length=params["salt_length"].native,
                )
                public_key.verify(
                    signature,
                    data,
                    pss_padding,
                    Prehashed(pss_hash) if prehashed else pss_hash,
                )
            elif mechanism == "dsa" and isinstance(public_key, dsa.DSAPublicKey):
                public_key.verify(signature, data, _hash())
            elif mechanism == "ecdsa" and isinstance(
                public_key, ec.EllipticCurvePublicKey
            ):
                public_key.verify(signature, data, ec.ECDSA(_hash()))
            elif mechanism == "ed25519" and isinstance(
                public_key, ed25519.Ed25519PublicKey
            ):
                public_key.verify(signature, data)
            elif mechanism == "ed448" and isinstance(public_key, ed448.Ed448PublicKey):
                public_key.verify(signature, data)
            else:
                raise CertificateVerificationError(
                    f"Signature mechanism {mechanism} is unsupported for the"
                    f" {self.public_key_algorithm} key of {self}"
                )
        except (InvalidSignature, ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise CertificateVerificationError(f"Invalid signature for {self}: {e!r}")

    def recover_digest_info(self, signature: bytes) -> tuple[str | None, bytes]:
        """Decrypts an RSA PKCS#1 v1.5 signature with the public key and returns
        the digest it carries, as a tuple of the digest algorithm name and the
        digest value.

        Some legacy signers sign the bare digest instead of a DigestInfo
        structure; in that case the algorithm is returned as :const:`None`.

        :raises CertificateVerificationError: when the signature can not be
            decrypted with this key
        """
        public_key = self.public_key
        if not isinstance(public_key, rsa.RSAPublicKey):
            raise CertificateVerificationError(
                f"Digest recovery requires an RSA key, {self} has a"
                f" {self.public_key_algorithm} key"
            )
        try:
            recovered = public_key.recover_data_from_signature(
                signature, padding.PKCS1v15(), None
            )
        except (InvalidSignature, ValueError) as e:
            raise CertificateVerificationError(
                f"Unable to decrypt the signature with the key of {self}: {e!r}"
            )

        try:
            digest_info = algos.DigestInfo.load(recovered)
            return (
                cast(str, digest_info["digest_algorithm"]["algorithm"].native),
                cast(bytes, digest_info["digest"].native),
            )
        except (ValueError, TypeError):
            logger.debug(f"Recovered data of {self} is not a DigestInfo structure")
            return None, recovered

    def _default_mechanism(self) -> str:
        return {
            "rsa": "rsassa_pkcs1v15",
            "rsassa_pss": "rsassa_pss",
            "dsa": "dsa",
            "ec": "ecdsa",
            "ed25519": "ed25519",
            "ed448": "ed448",
        }.get(self.public_key_algorithm, self.public_key_algorithm)


class CertificateName:
    OID_TO_RDN: ClassVar[dict[str, str]] = {
        # RFC4514 names, followed by a few common attributes in signing
        # certificates
        "2.5.4.3": "CN",
        "2.5.4.6": "C",
        "2.5.4.7": "L",
        "2.5.4.8": "ST",
        "2.5.4.9": "STREET",
        "2.5.4.10": "O",
        "2.5.4.11": "OU",
        "0.9.2342.19200300.100.1.25": "DC",
        "0.9.2342.19200300.100.1.1": "UID",
        "1.2.840.113549.1.9.1": "EMAIL",
        "2.5.4.4": "SN",
        "2.5.4.5": "serialNumber",
        "2.5.4.12": "title",
        "2.5.4.42": "GN",
        "2.5.4.43": "initials",
        "2.5.4.46": "dnQualifier",
        "2.5.4.65": "pseudonym",
        "2.5.4.97": "organizationIdentifier",
    }

    def __init__(self, asn1: asn1crypto.x509.Name | asn1crypto.x509.GeneralName):
        if isinstance(asn1, asn1crypto.x509.GeneralName):
            if asn1.name != "directory_name":
                raise NotImplementedError(
                    f"CertificateNames of type {asn1.name} not supported"
                )
            asn1 = asn1.chosen
        self.asn1 = asn1

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CertificateName) and self.rdns == other.rdns

    def __hash__(self) -> int:
        return hash(self.rdns)

    def __str__(self) -> str:
        return self.dn

    @property
    def dn(self) -> str:
        """Returns an (almost) rfc2253 compatible string given a RDNSequence"""

        result = []
        for type, value in self.get_components():
            value = re.sub('([,+"<>;\\\\])', r"\\\1", str(value))
            if value.startswith("#"):
                value = "\\" + value
            if value.endswith(" "):
                value = value[:-1] + "\\ "
            result.append(f"{type}={value}")
        return ", ".join(result)

    @property
    def common_name(self) -> str | None:
        """The first CN component, which is what PDF viewers show as the name of
        the signer.
        """
        return next(iter(self.get_components("CN")), None)

    @property
    def rdns(self) -> Iterable[tuple[str, str]]:
        """A list of all components of the object."""
        return tuple(self.get_components())

    @overload
    def get_components(
        self, component_type: None = None
    ) -> Iterator[tuple[str, str]]: ...

    @overload
    def get_components(self, component_type: str) -> Iterator[str]: ...

    def get_components(
        self, component_type: str | None = None
    ) -> Iterator[tuple[str, str]] | Iterator[str]:
        """Get individual components of this CertificateName

        :param component_type: if provided, yields only values of this type,
            if not provided, yields tuples of ``(type, value)``
        """

        for n in list(self.asn1.chosen)[::-1]:
            type_value = n[0]

            type = self.OID_TO_RDN.get(
                type_value["type"].dotted, type_value["type"].dotted
            )
            value = type_value["value"].native

            if component_type is not None:
                if component_type in (
                    type_value["type"].dotted,
                    type_value["type"].native,
                    type,
                ):
                    yield value
            else:
                yield type, value
