import datetime
import hashlib

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from pdfsig.exceptions import CertificateVerificationError
from pdfsig.x509 import (
    Certificate,
    CertificateName,
    CertificateStore,
    CertificateValidity,
    check_validity,
)
from tests._pki import UTC, make_certificate, private_key, sign_digest, signer


def test_validity_window():
    _, certificate = signer()
    assert (
        check_validity(certificate, datetime.datetime(2018, 12, 31, tzinfo=UTC))
        is CertificateValidity.NOT_YET_VALID
    )
    assert (
        check_validity(certificate, datetime.datetime(2024, 1, 1, tzinfo=UTC))
        is CertificateValidity.VALID
    )
    assert (
        check_validity(certificate, datetime.datetime(2031, 1, 1, tzinfo=UTC))
        is CertificateValidity.EXPIRED
    )


def test_validity_boundaries_are_inclusive():
    _, certificate = signer()
    assert certificate.validity_at(certificate.valid_from) is CertificateValidity.VALID
    assert certificate.validity_at(certificate.valid_to) is CertificateValidity.VALID


def test_naive_instant_is_utc():
    _, certificate = signer()
    assert (
        certificate.validity_at(datetime.datetime(2029, 12, 31, 23, 59))
        is CertificateValidity.VALID
    )


def test_names():
    _, certificate = signer("Alice")
    assert certificate.subject.common_name == "Alice"
    assert "CN=Alice" in certificate.subject.dn
    assert certificate.subject.dn.count("=") == 2
    assert certificate.issuer == certificate.subject
    assert "Alice" in str(certificate)


def test_pem_round_trip():
    key, certificate = signer()
    pem = serialization.Encoding.PEM
    data = x509.load_der_x509_certificate(certificate.to_der).public_bytes(pem)
    assert Certificate.from_pem(data) == certificate
    assert list(Certificate.from_pems(data * 2)) == [certificate, certificate]


def test_verify_signature():
    key, certificate = signer()
    digest = b"\x01" * 32
    signature = sign_digest(key, digest, "sha256")
    certificate.verify_signature(signature, digest, hashlib.sha256, prehashed=True)
    with pytest.raises(CertificateVerificationError):
        certificate.verify_signature(
            signature, b"\x02" * 32, hashlib.sha256, prehashed=True
        )


def test_recover_digest_info():
    key, certificate = signer()
    digest = b"\x03" * 32
    assert certificate.recover_digest_info(sign_digest(key, digest, "sha256")) == (
        "sha256",
        digest,
    )


def test_recover_digest_info_requires_rsa():
    key, certificate = signer("Eve", "ec")
    with pytest.raises(CertificateVerificationError):
        certificate.recover_digest_info(b"\x00" * 64)


def test_store_lookup():
    _, alice = signer("Alice")
    _, bob = signer("Bob")
    store = CertificateStore([alice, bob])

    assert store.find_certificate(
        issuer=alice.issuer, serial_number=alice.serial_number
    ) == alice
    assert list(store.find_certificates(subject=bob.subject)) == [bob]
    assert list(store.find_certificates(sha256_fingerprint=bob.sha256_fingerprint)) == [
        bob
    ]
    with pytest.raises(KeyError):
        store.find_certificate(subject=CertificateName(signer("Carol")[1].asn1.subject))


def test_store_union():
    _, alice = signer("Alice")
    _, bob = signer("Bob")
    combined = CertificateStore([alice]) | CertificateStore([alice, bob])
    assert list(combined) == [alice, bob]


def test_store_from_path(tmp_path):
    certificates = [signer("Alice")[1], signer("Bob")[1]]
    for index, certificate in enumerate(certificates):
        pem = x509.load_der_x509_certificate(certificate.to_der).public_bytes(
            serialization.Encoding.PEM
        )
        (tmp_path / f"cert{index}.pem").write_bytes(pem)

    assert list(CertificateStore.from_path(tmp_path)) == certificates
    assert list(CertificateStore.from_path(tmp_path / "cert1.pem")) == [
        certificates[1]
    ]


def test_issued_certificate():
    ca_key = private_key("CA")
    ca = make_certificate("CA", ca_key)
    leaf = make_certificate("Leaf", private_key("Leaf"), issuer=(ca, ca_key))
    assert leaf.issuer == ca.subject
