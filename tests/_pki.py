"""Builders for the keys, certificates, CMS structures, timestamp tokens and PDF
files used in the tests. Everything is generated on the fly.
"""

from __future__ import annotations

import datetime
import functools
import hashlib
import io
import re
import struct
import zlib
from typing import Any, Callable

import pikepdf
from asn1crypto import algos, cms, core, tsp, x509
from cryptography import x509 as crypto_x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from cryptography.x509.oid import NameOID

from pdfsig.x509 import Certificate

UTC = datetime.timezone.utc
SIGNING_TIME = datetime.datetime(2020, 6, 1, 12, 0, tzinfo=UTC)
NOW = datetime.datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@functools.lru_cache(maxsize=None)
def private_key(name: str, key_type: str = "rsa") -> Any:
    """Returns a private key, which is cached by name to keep the tests fast."""
    if key_type == "ec":
        return ec.generate_private_key(ec.SECP256R1())
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def make_certificate(
    common_name: str,
    key: Any,
    *,
    not_before: datetime.datetime = datetime.datetime(2019, 1, 1, tzinfo=UTC),
    not_after: datetime.datetime = datetime.datetime(2030, 1, 1, tzinfo=UTC),
    issuer: tuple[Certificate, Any] | None = None,
) -> Certificate:
    name = crypto_x509.Name(
        [
            crypto_x509.NameAttribute(NameOID.COMMON_NAME, common_name),
            crypto_x509.NameAttribute(NameOID.ORGANIZATION_NAME, "pdfsig tests"),
        ]
    )
    if issuer is not None:
        issuer_name = crypto_x509.load_der_x509_certificate(issuer[0].to_der).subject
        issuer_key = issuer[1]
    else:
        issuer_name, issuer_key = name, key

    certificate = (
        crypto_x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(crypto_x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(issuer_key, hashes.SHA256())
    )
    return Certificate.from_der(certificate.public_bytes(serialization.Encoding.DER))


@functools.lru_cache(maxsize=None)
def signer(name: str = "Alice", key_type: str = "rsa") -> tuple[Any, Certificate]:
    key = private_key(name, key_type)
    return key, make_certificate(name, key)


def sign_digest(key: Any, digest: bytes, hash_name: str) -> bytes:
    algorithm = Prehashed(getattr(hashes, hash_name.upper())())
    if isinstance(key, rsa.RSAPrivateKey):
        return key.sign(digest, padding.PKCS1v15(), algorithm)
    return key.sign(digest, ec.ECDSA(algorithm))


def signature_algorithm(key: Any, hash_name: str) -> algos.SignedDigestAlgorithm:
    if isinstance(key, rsa.RSAPrivateKey):
        return algos.SignedDigestAlgorithm({"algorithm": "rsassa_pkcs1v15"})
    return algos.SignedDigestAlgorithm({"algorithm": f"{hash_name}_ecdsa"})


def simple_cms_attribute(attr_type: str, value: Any) -> cms.CMSAttribute:
    return cms.CMSAttribute(
        {"type": cms.CMSAttributeType(attr_type), "values": (value,)}
    )


def build_signed_data(
    key: Any,
    certificate: Certificate,
    *,
    digest: bytes,
    content: bytes | None = None,
    content_type: str = "data",
    digest_algorithm: str = "sha256",
    signing_time: datetime.datetime | None = None,
    signed_attributes: bool = True,
    unsigned_attributes: list[cms.CMSAttribute] | None = None,
    embed_certificate: bool = True,
    tamper_signature: bool = False,
) -> cms.ContentInfo:
    """Builds a SignedData structure with a single signer.

    :param digest: The digest of the signed content, computed with
        ``digest_algorithm``
    :param content: The content to encapsulate; detached when omitted
    """
    digest_algorithm_obj = algos.DigestAlgorithm({"algorithm": digest_algorithm})
    signer_info: dict[str, Any] = {
        "version": "v1",
        "sid": cms.SignerIdentifier(
            {
                "issuer_and_serial_number": cms.IssuerAndSerialNumber(
                    {
                        "issuer": certificate.asn1.issuer,
                        "serial_number": certificate.asn1.serial_number,
                    }
                )
            }
        ),
        "digest_algorithm": digest_algorithm_obj,
        "signature_algorithm": signature_algorithm(key, digest_algorithm),
    }

    if signed_attributes:
        attributes = [
            simple_cms_attribute("content_type", content_type),
            simple_cms_attribute("message_digest", digest),
        ]
        if signing_time is not None:
            attributes.append(
                simple_cms_attribute(
                    "signing_time", cms.Time({"utc_time": core.UTCTime(signing_time)})
                )
            )
        signed_attrs = cms.CMSAttributes(attributes)
        signer_info["signed_attrs"] = signed_attrs
        to_sign = hashlib.new(digest_algorithm, signed_attrs.dump()).digest()
    else:
        to_sign = digest

    signature = sign_digest(key, to_sign, digest_algorithm)
    if tamper_signature:
        signature = signature[:-1] + bytes([signature[-1] ^ 0x01])
    signer_info["signature"] = signature
    if unsigned_attributes:
        signer_info["unsigned_attrs"] = cms.CMSAttributes(unsigned_attributes)

    # version 1 SignedData wraps its content in a PKCS#7 ContentInfo
    encap_content_info: dict[str, Any] = {"content_type": content_type}
    if content is not None:
        encap_content_info["content"] = (
            core.OctetString(content)
            if content_type == "data"
            else cms.ParsableOctetString(content)
        )

    signed_data: dict[str, Any] = {
        "version": "v3" if content_type != "data" else "v1",
        "digest_algorithms": cms.DigestAlgorithms((digest_algorithm_obj,)),
        "encap_content_info": encap_content_info,
        "signer_infos": [cms.SignerInfo(signer_info)],
    }
    if embed_certificate:
        signed_data["certificates"] = [certificate.asn1]
    return cms.ContentInfo(
        {
            "content_type": cms.ContentType("signed_data"),
            "content": cms.SignedData(signed_data),
        }
    )


def build_timestamp_token(
    stamped_data: bytes,
    *,
    gen_time: datetime.datetime = SIGNING_TIME,
    hash_algorithm: str = "sha256",
    tsa: tuple[Any, Certificate] | None = None,
    tamper_imprint: bool = False,
    tamper_signature: bool = False,
) -> cms.ContentInfo:
    """Builds an RFC3161 timestamp token over ``stamped_data``."""
    key, certificate = tsa or signer("Test TSA")
    imprint = hashlib.new(hash_algorithm, stamped_data).digest()
    if tamper_imprint:
        imprint = bytes([imprint[0] ^ 0xFF]) + imprint[1:]

    tst_info = tsp.TSTInfo(
        {
            "version": "v1",
            "policy": core.ObjectIdentifier("1.3.6.1.4.1.4146.2.2"),
            "message_imprint": tsp.MessageImprint(
                {
                    "hash_algorithm": algos.DigestAlgorithm(
                        {"algorithm": hash_algorithm}
                    ),
                    "hashed_message": imprint,
                }
            ),
            "serial_number": 1234,
            "gen_time": gen_time,
            "tsa": x509.GeneralName(
                name="directory_name", value=certificate.asn1.subject
            ),
        }
    )
    tst_info_data = tst_info.dump()
    return build_signed_data(
        key,
        certificate,
        digest=hashlib.sha256(tst_info_data).digest(),
        content=tst_info_data,
        content_type="tst_info",
        signing_time=gen_time,
        tamper_signature=tamper_signature,
    )


def timestamp_attribute(token: cms.ContentInfo) -> cms.CMSAttribute:
    return simple_cms_attribute("signature_time_stamp_token", token)


def cms_signer(
    key: Any = None,
    certificate: Certificate | None = None,
    *,
    digest_algorithm: str = "sha256",
    timestamp: Callable[[bytes], cms.ContentInfo] | None = None,
    **kwargs: Any,
) -> Callable[[bytes], bytes]:
    """Returns a function that signs covered bytes with a detached CMS signature,
    optionally with a timestamp token built by ``timestamp`` from the signature
    value.
    """
    if key is None or certificate is None:
        key, certificate = signer()

    def sign(covered: bytes) -> bytes:
        digest = hashlib.new(digest_algorithm, covered).digest()
        content_info = build_signed_data(
            key, certificate, digest=digest, digest_algorithm=digest_algorithm, **kwargs
        )
        if timestamp is not None:
            signer_info = content_info["content"]["signer_infos"][0]
            token = timestamp(signer_info["signature"].native)
            signer_info["unsigned_attrs"] = cms.CMSAttributes(
                [timestamp_attribute(token)]
            )
            return content_info.dump(force=True)
        return content_info.dump()

    return sign


def pkcs7_sha1_signer(key: Any = None, certificate: Certificate | None = None):
    if key is None or certificate is None:
        key, certificate = signer()

    def sign(covered: bytes) -> bytes:
        content = hashlib.sha1(covered).digest()
        return build_signed_data(
            key,
            certificate,
            digest=hashlib.sha256(content).digest(),
            content=content,
        ).dump()

    return sign


def raw_rsa_signer(key: Any = None) -> Callable[[bytes], bytes]:
    if key is None:
        key, _ = signer()

    def sign(covered: bytes) -> bytes:
        return core.OctetString(
            key.sign(covered, padding.PKCS1v15(), hashes.SHA1())
        ).dump()

    return sign


def document_timestamper(**kwargs: Any) -> Callable[[bytes], bytes]:
    def sign(covered: bytes) -> bytes:
        return build_timestamp_token(covered, **kwargs).dump()

    return sign


_HEADER = b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n"
_BASE_OBJECTS = {
    1: b"<< /Type /Catalog /Pages 2 0 R /AcroForm << /Fields [] >> >>",
    2: b"<< /Type /Pages /Kids [] /Count 0 >>",
    3: b"<< /Title (Test document) /Author (pdfsig) >>",
}

PDFA_XMP = (
    b'<?xpacket begin="\xef\xbb\xbf" id="W5M0MpCehiHzreSzNTczkc9d"?>\n'
    b'<x:xmpmeta xmlns:x="adobe:ns:meta/">\n'
    b'<rdf:RDF xmlns:rdf="http://www.w3.org/1999/02/22-rdf-syntax-ns#">\n'
    b'<rdf:Description rdf:about="" xmlns:pdfaid="http://www.aiim.org/pdfa/ns/id/">\n'
    b"<pdfaid:part>2</pdfaid:part>\n"
    b"<pdfaid:conformance>B</pdfaid:conformance>\n"
    b"</rdf:Description>\n"
    b"</rdf:RDF>\n"
    b"</x:xmpmeta>\n"
    b'<?xpacket end="w"?>'
)


def stream_object(data: bytes, entries: bytes = b"") -> bytes:
    return b"<< %s /Length %d >>\nstream\n%s\nendstream" % (entries, len(data), data)


def _previous_xref(pdf: bytes) -> tuple[int | None, int]:
    """The offset of the last cross-reference section of ``pdf`` and its /Size."""
    if not pdf:
        return None, 0
    offset = re.findall(rb"startxref\s+(\d+)", pdf)[-1]
    size = re.findall(rb"/Size (\d+)", pdf)[-1]
    return int(offset), int(size)


def write_objects(pdf: bytes, objects: dict[int, bytes]) -> bytes:
    """Appends ``objects`` to ``pdf`` with a cross-reference table and trailer. For
    an empty ``pdf`` this writes a new file, otherwise an incremental update.
    """
    previous, size = _previous_xref(pdf)
    out = bytearray(pdf or _HEADER)
    offsets = {}
    for number, body in sorted(objects.items()):
        offsets[number] = len(out)
        out += b"%d 0 obj\n%s\nendobj\n" % (number, body)

    xref_offset = len(out)
    out += b"xref\n"
    if previous is None:
        out += b"0 1\n0000000000 65535 f \n"
    for number, offset in sorted(offsets.items()):
        out += b"%d 1\n%010d 00000 n \n" % (number, offset)
    size = max(size, max(offsets) + 1)
    out += b"trailer\n<< /Size %d /Root 1 0 R /Info 3 0 R" % size
    if previous is not None:
        out += b" /Prev %d" % previous
    out += b" >>\nstartxref\n%d\n%%%%EOF\n" % xref_offset
    return bytes(out)


def write_compressed_objects(
    pdf: bytes, objects: dict[int, bytes], compressed: set[int]
) -> bytes:
    """Appends an incremental update to ``pdf`` like :func:`write_objects`, but
    stores the objects numbered in ``compressed`` in a Flate-compressed object
    stream, indexed by a cross-reference stream.
    """
    previous, size = _previous_xref(pdf)
    stream_number = max(size, max(objects) + 1)
    xref_number = stream_number + 1

    header, body = [], b""
    for number in sorted(compressed):
        header.append(b"%d %d" % (number, len(body)))
        body += objects[number] + b"\n"
    first = b" ".join(header) + b"\n"
    object_stream = stream_object(
        zlib.compress(first + body),
        b"/Type /ObjStm /N %d /First %d /Filter /FlateDecode"
        % (len(compressed), len(first)),
    )

    out = bytearray(pdf)
    entries = {}
    plain = {n: b for n, b in objects.items() if n not in compressed}
    for number, obj in sorted({**plain, stream_number: object_stream}.items()):
        entries[number] = struct.pack(">BIH", 1, len(out), 0)
        out += b"%d 0 obj\n%s\nendobj\n" % (number, obj)
    for index, number in enumerate(sorted(compressed)):
        entries[number] = struct.pack(">BIH", 2, stream_number, index)
    xref_offset = len(out)
    entries[xref_number] = struct.pack(">BIH", 1, xref_offset, 0)

    index_array = b" ".join(b"%d 1" % n for n in sorted(entries))
    xref_stream = stream_object(
        b"".join(entries[n] for n in sorted(entries)),
        b"/Type /XRef /Size %d /Root 1 0 R /Info 3 0 R /Prev %d /W [1 4 2]"
        b" /Index [%s]" % (xref_number + 1, previous, index_array),
    )
    out += b"%d 0 obj\n%s\nendobj\n" % (xref_number, xref_stream)
    out += b"startxref\n%d\n%%%%EOF\n" % xref_offset
    return bytes(out)


def base_pdf(catalog_entries: bytes = b"", objects: dict | None = None) -> bytes:
    """A new file with an empty page tree and form, plus ``objects``."""
    base = dict(_BASE_OBJECTS)
    base[1] = base[1][:-2] + catalog_entries + b" >>"
    base.update(objects or {})
    return write_objects(b"", base)


BASE_PDF = base_pdf()

_BYTE_RANGE_PLACEHOLDER = b"/ByteRange [0 0000000000 0000000000 0000000000]"


def _catalog(pdf: bytes, new_fields: list[int]) -> bytes:
    """An updated catalog for ``pdf`` that adds ``new_fields`` to the form."""
    with pikepdf.open(io.BytesIO(pdf)) as document:
        root = document.Root
        fields = [field.objgen[0] for field in root.AcroForm.get("/Fields", [])]
        entries = b""
        if "/Metadata" in root:
            entries = b" /Metadata %d 0 R" % root.Metadata.objgen[0]
    references = b" ".join(b"%d 0 R" % n for n in fields + new_fields)
    return (
        b"<< /Type /Catalog /Pages 2 0 R /AcroForm << /Fields [%s] /SigFlags 3 >>%s"
        b" >>" % (references, entries)
    )


def add_signature(
    pdf: bytes,
    sign: Callable[[bytes], bytes],
    *,
    object_number: int,
    field_name: str | None = "Signature1",
    sub_filter: str = "adbe.pkcs7.detached",
    signature_entries: bytes = b"",
    field_entries: bytes = b"",
    form_field: int | None = None,
    extra_objects: dict[int, bytes] | None = None,
    object_stream: bool = False,
    placeholder_size: int = 8192,
) -> bytes:
    """Appends an incremental update with a signature field and its signature
    dictionary to ``pdf``, and signs the result with ``sign``.

    :param object_number: The object number of the signature dictionary; the field
        gets the next number
    :param form_field: The object to add to the fields of the form, defaults to the
        signature field
    :param object_stream: Store the field and the catalog in an object stream
    """
    type_name = "DocTimeStamp" if sub_filter == "ETSI.RFC3161" else "Sig"
    contents = b"<" + b"0" * (placeholder_size * 2) + b">"
    objects = {
        object_number: f"<< /Type /{type_name} /Filter /Adobe.PPKLite"
        f" /SubFilter /{sub_filter} ".encode()
        + _BYTE_RANGE_PLACEHOLDER
        + b" /Contents "
        + contents
        + b" "
        + signature_entries
        + b" >>"
    }
    if field_name is not None:
        field_number = object_number + 1
        objects[field_number] = (
            f"<< /FT /Sig /T ({field_name}) /V {object_number} 0 R ".encode()
            + field_entries
            + b" >>"
        )
        objects[1] = _catalog(pdf, [form_field or field_number])
    objects.update(extra_objects or {})

    if object_stream:
        data = write_compressed_objects(pdf, objects, {1, object_number + 1})
    else:
        data = write_objects(pdf, objects)

    contents_start = data.rindex(b"/Contents <") + len(b"/Contents ")
    contents_end = contents_start + len(contents)
    byte_range = (
        f"/ByteRange [0 {contents_start:<10} {contents_end:<10}"
        f" {len(data) - contents_end:<10}]".encode()
    )
    assert len(byte_range) == len(_BYTE_RANGE_PLACEHOLDER)
    data = data.replace(_BYTE_RANGE_PLACEHOLDER, byte_range)

    signature_value = sign(data[:contents_start] + data[contents_end:])
    assert len(signature_value) <= placeholder_size
    hex_value = signature_value.hex().encode().ljust(placeholder_size * 2, b"0")
    return data[: contents_start + 1] + hex_value + data[contents_end - 1 :]


def docmdp_reference(permission: int) -> bytes:
    return (
        b"/Reference [<< /Type /SigRef /TransformMethod /DocMDP /TransformParams"
        b" << /Type /TransformParams /P %d /V /1.2 >> /Data 1 0 R >>]" % permission
    )


def flip_byte(data: bytes, offset: int) -> bytes:
    return data[:offset] + bytes([data[offset] ^ 0x01]) + data[offset + 1 :]


def find_offset(data: bytes, pattern: bytes) -> int:
    match = re.search(re.escape(pattern), data)
    assert match is not None
    return match.start()
