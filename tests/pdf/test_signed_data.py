import hashlib

import pytest
from asn1crypto import cms

from pdfsig.exceptions import MalformedSignedDataError, NoSigningCertificateError
from pdfsig.pdf import SignatureDictionary, get_parser
from pdfsig.pdf.parsers import (
    DetachedCmsParser,
    DocumentTimestampParser,
    RawRsaParser,
    Sha1CmsParser,
)
from pdfsig.pdf.signed_data import load_raw_signature
from pdfsig.pdf.tsp import TimestampSignedData
from pdfsig.pkcs7 import SignedData
from pdfsig.x509 import CertificateStore
from tests._pki import (
    SIGNING_TIME,
    build_signed_data,
    build_timestamp_token,
    cms_signer,
    document_timestamper,
    pkcs7_sha1_signer,
    raw_rsa_signer,
    signer,
)

COVERED = b"%PDF-1.7 the covered bytes of a document"


def parse(blob, sub_filter="adbe.pkcs7.detached", certificate_store=None, **fields):
    dictionary = SignatureDictionary({"SubFilter": sub_filter, **fields})
    return get_parser(sub_filter).parse(
        blob, dictionary, certificate_store=certificate_store
    )


@pytest.mark.parametrize(
    "sub_filter,parser_class",
    [
        ("adbe.pkcs7.detached", DetachedCmsParser),
        ("ETSI.CAdES.detached", DetachedCmsParser),
        ("adbe.pkcs7.sha1", Sha1CmsParser),
        ("adbe.x509.rsa_sha1", RawRsaParser),
        ("ETSI.RFC3161", DocumentTimestampParser),
        ("vendor.custom", DetachedCmsParser),
        (None, DetachedCmsParser),
    ],
)
def test_get_parser(sub_filter, parser_class):
    assert type(get_parser(sub_filter)) is parser_class


def test_detached_signature():
    blob = cms_signer(signing_time=SIGNING_TIME)(COVERED)
    signature = parse(blob + b"\0" * 100)

    assert signature.verify_integrity(COVERED) == (True, True)
    assert signature.digest_algorithm == hashlib.sha256
    assert signature.encryption_algorithm == "rsassa_pkcs1v15"
    assert signature.signer_certificate == signer()[1]
    assert signature.signed_signing_time == SIGNING_TIME
    assert signature.dictionary.signing_time is None
    assert signature.timestamp_token is None
    assert not signature.is_document_timestamp


def test_detached_signature_other_content():
    signature = parse(cms_signer()(COVERED))
    assert signature.verify_integrity(COVERED + b"!") == (False, True)


def test_detached_signature_invalid_signature():
    signature = parse(cms_signer(tamper_signature=True)(COVERED))
    assert signature.verify_integrity(COVERED) == (True, False)


def test_detached_signature_wrong_key():
    key, _ = signer("Mallory")
    _, certificate = signer("Alice")
    signature = parse(cms_signer(key, certificate)(COVERED))
    assert signature.verify_integrity(COVERED) == (True, False)


@pytest.mark.parametrize("digest_algorithm", ["sha1", "sha384", "sha512"])
def test_detached_signature_digest_algorithms(digest_algorithm):
    signature = parse(cms_signer(digest_algorithm=digest_algorithm)(COVERED))
    assert signature.digest_algorithm == getattr(hashlib, digest_algorithm)
    assert signature.verify_integrity(COVERED) == (True, True)


def test_ecdsa_signature():
    key, certificate = signer("Eve", "ec")
    signature = parse(cms_signer(key, certificate)(COVERED))
    assert signature.encryption_algorithm == "ecdsa"
    assert signature.verify_integrity(COVERED) == (True, True)
    assert signature.verify_integrity(COVERED + b"!") == (False, True)


def test_signature_without_signed_attributes():
    blob = cms_signer(signed_attributes=False)(COVERED)
    signature = parse(blob, M=b"D:20210101000000Z")
    assert signature.signed_signing_time is None
    assert signature.dictionary.signing_time.year == 2021
    assert signature.verify_integrity(COVERED) == (True, True)
    assert signature.verify_integrity(COVERED + b"!") == (False, True)


def test_ecdsa_signature_without_signed_attributes():
    key, certificate = signer("Eve", "ec")
    signature = parse(cms_signer(key, certificate, signed_attributes=False)(COVERED))
    assert signature.verify_integrity(COVERED) == (True, True)
    # without signed attributes, the integrity of an ECDSA signature can not be
    # told apart from its authenticity
    assert signature.verify_integrity(COVERED + b"!") == (False, False)


def test_certificate_from_store():
    key, certificate = signer()
    signature = parse(
        cms_signer(key, certificate, embed_certificate=False)(COVERED),
        certificate_store=CertificateStore([signer("Bob")[1], certificate]),
    )
    assert signature.signer_certificate == certificate
    assert signature.verify_integrity(COVERED) == (True, True)


def test_no_signing_certificate():
    signature = parse(cms_signer(embed_certificate=False)(COVERED))
    assert len(signature.certificates) == 0
    with pytest.raises(NoSigningCertificateError):
        signature.verify_integrity(COVERED)


@pytest.mark.parametrize(
    "blob",
    [
        b"",
        b"\0" * 64,
        b"\x30\x03\x02\x01",
        cms.ContentInfo({"content_type": "data", "content": b"data"}).dump(),
    ],
)
def test_malformed_blob(blob):
    with pytest.raises(MalformedSignedDataError):
        parse(blob)


def test_encapsulated_content_type_must_be_data():
    key, certificate = signer()
    blob = build_signed_data(
        key,
        certificate,
        digest=hashlib.sha256(COVERED).digest(),
        content_type="tst_info",
    ).dump()
    with pytest.raises(MalformedSignedDataError):
        parse(blob)


def test_sha1_signature():
    signature = parse(pkcs7_sha1_signer()(COVERED), "adbe.pkcs7.sha1")
    assert signature.digest_algorithm == hashlib.sha1
    assert signature.verify_integrity(COVERED) == (True, True)
    assert signature.verify_integrity(COVERED + b"!") == (False, True)


def test_raw_rsa_signature():
    _, certificate = signer()
    signature = parse(
        raw_rsa_signer()(COVERED),
        "adbe.x509.rsa_sha1",
        Cert=[certificate.to_der, signer("Bob")[1].to_der],
    )
    assert signature.signer_certificate == certificate
    assert len(signature.certificates) == 2
    assert signature.digest_algorithm == hashlib.sha1
    assert signature.encryption_algorithm == "rsassa_pkcs1v15"
    assert signature.verify_integrity(COVERED) == (True, True)
    assert signature.verify_integrity(COVERED + b"!") == (False, True)


def test_raw_rsa_signature_wrong_certificate():
    signature = parse(
        raw_rsa_signer()(COVERED), "adbe.x509.rsa_sha1", Cert=signer("Bob")[1].to_der
    )
    assert signature.verify_integrity(COVERED) == (False, False)


def test_raw_rsa_signature_without_certificate():
    signature = parse(raw_rsa_signer()(COVERED), "adbe.x509.rsa_sha1")
    with pytest.raises(NoSigningCertificateError):
        signature.verify_integrity(COVERED)


def test_load_raw_signature():
    assert load_raw_signature(b"\x04\x03abc\0\0\0") == b"abc"
    with pytest.raises(MalformedSignedDataError):
        load_raw_signature(b"\x30\x00")
    with pytest.raises(MalformedSignedDataError):
        load_raw_signature(b"")


def test_document_timestamp():
    signature = parse(document_timestamper()(COVERED), "ETSI.RFC3161")
    assert signature.is_document_timestamp
    assert isinstance(signature.timestamp_token, TimestampSignedData)
    assert signature.signed_signing_time == SIGNING_TIME
    assert signature.timestamped_data(COVERED) == COVERED
    assert signature.verify_integrity(COVERED) == (True, True)
    assert signature.verify_integrity(COVERED + b"!") == (False, True)


def test_document_timestamp_malformed():
    with pytest.raises(MalformedSignedDataError):
        parse(cms_signer()(COVERED), "ETSI.RFC3161")


def test_signature_with_timestamp():
    signature = parse(
        cms_signer(timestamp=lambda value: build_timestamp_token(value))(COVERED)
    )
    token = signature.timestamp_token
    assert isinstance(token, TimestampSignedData)
    assert token.signing_time == SIGNING_TIME
    assert token.check_message_digest(signature.encrypted_digest)
    assert signature.timestamped_data(COVERED) == signature.encrypted_digest


def test_signed_data_requires_single_signer():
    key, certificate = signer()
    content_info = build_signed_data(
        key, certificate, digest=hashlib.sha256(COVERED).digest()
    )
    signed_data = content_info["content"]
    signed_data["signer_infos"] = [
        signed_data["signer_infos"][0],
        signed_data["signer_infos"][0],
    ]
    with pytest.raises(MalformedSignedDataError):
        SignedData.from_envelope(content_info.dump(force=True))
