import io

import pytest

from pdfsig.exceptions import PdfObjectError
from pdfsig.pdf import Conformance, PdfFile
from tests._pki import (
    BASE_PDF,
    PDFA_XMP,
    add_signature,
    base_pdf,
    cms_signer,
    stream_object,
    write_objects,
)


def test_not_a_pdf():
    with pytest.raises(PdfObjectError):
        PdfFile(b"GIF89a")


def test_unreadable_pdf():
    with pytest.raises(PdfObjectError):
        PdfFile(b"%PDF-1.7\nthis is not a PDF body\n")


def test_basic_properties():
    pdf = PdfFile.from_stream(io.BytesIO(BASE_PDF), name="test.pdf")
    assert str(pdf) == "test.pdf"
    assert pdf.current_length == len(BASE_PDF)
    assert pdf.document_bytes == BASE_PDF
    assert pdf.signature_names() == []
    assert pdf.metadata == {"Title": "Test document", "Author": "pdfsig"}
    assert pdf.conformance is None


def test_from_path(tmp_path):
    path = tmp_path / "document.pdf"
    path.write_bytes(BASE_PDF)
    with PdfFile.from_path(path) as pdf:
        assert pdf.document_bytes == BASE_PDF
        assert pdf.name == str(path)


def test_updated_metadata():
    data = write_objects(BASE_PDF, {3: b"<< /Title (Updated) >>"})
    assert PdfFile(data).metadata == {"Title": "Updated"}


def test_conformance():
    data = base_pdf(
        b" /Metadata 20 0 R",
        {20: stream_object(PDFA_XMP, b"/Type /Metadata /Subtype /XML")},
    )
    conformance = PdfFile(data).conformance
    assert conformance == Conformance("2", "B")
    assert str(conformance) == "PDF/A-2b"


def test_conformance_survives_signing():
    data = base_pdf(
        b" /Metadata 20 0 R",
        {20: stream_object(PDFA_XMP, b"/Type /Metadata /Subtype /XML")},
    )
    data = add_signature(data, cms_signer(), object_number=4)
    assert PdfFile(data).conformance == Conformance("2", "B")


def test_signature_dictionary():
    data = add_signature(
        BASE_PDF,
        cms_signer(),
        object_number=4,
        field_name="Approval",
        signature_entries=b"/Reason (\xfe\xff\x00O\x00K) /Reference 20 0 R",
        field_entries=b"/Lock << /Action /Include /Fields [(Total)] >>",
        extra_objects={20: b"<< /TransformMethod /DocMDP /Data 1 0 R >>"},
    )
    pdf = PdfFile(data)

    assert pdf.signature_names() == ["Approval"]
    dictionary = pdf.get_signature_dictionary("Approval")
    assert dictionary.type == "Sig"
    assert dictionary.filter == "Adobe.PPKLite"
    assert dictionary.sub_filter == "adbe.pkcs7.detached"
    assert dictionary.reason == "OK"
    assert dictionary.lock == {"Action": "Include", "Fields": [b"Total"]}
    assert dictionary.references == [{"TransformMethod": "DocMDP"}]
    assert dictionary.byte_range.end == len(data)
    assert pdf.get_signed_data_blob("Approval") == dictionary.contents
    assert dictionary.contents.startswith(b"\x30")
    assert dictionary.contents.endswith(b"\0")


def test_field_in_object_stream():
    data = add_signature(
        BASE_PDF,
        cms_signer(),
        object_number=4,
        field_name="Approval",
        field_entries=b"/Lock << /Action /All >>",
        object_stream=True,
    )
    assert b"(Approval)" not in data

    pdf = PdfFile(data)
    assert pdf.signature_names() == ["Approval"]
    assert pdf.get_signature_dictionary("Approval").lock == {"Action": "All"}
    assert pdf.metadata["Title"] == "Test document"


def test_qualified_field_names():
    data = add_signature(
        BASE_PDF,
        cms_signer(),
        object_number=4,
        field_name="Sig",
        field_entries=b"/Parent 8 0 R",
        form_field=8,
        extra_objects={8: b"<< /T (Form) /Kids [5 0 R] >>"},
    )
    assert PdfFile(data).signature_names() == ["Form.Sig"]


def test_signatures_without_field():
    data = add_signature(BASE_PDF, cms_signer(), object_number=4, field_name=None)
    data = add_signature(data, cms_signer(), object_number=6, field_name="Signature1")
    assert PdfFile(data).signature_names() == ["Signature2", "Signature1"]


def test_duplicate_field_names():
    data = add_signature(BASE_PDF, cms_signer(), object_number=4, field_name="Same")
    data = add_signature(data, cms_signer(), object_number=6, field_name="Same")
    assert PdfFile(data).signature_names() == ["Same", "Signature1"]


def test_reference_cycle_in_signature_dictionary():
    data = add_signature(
        BASE_PDF,
        cms_signer(),
        object_number=4,
        signature_entries=b"/Reason 20 0 R",
        extra_objects={20: b"<< /Next 20 0 R >>"},
    )
    pdf = PdfFile(data)

    assert pdf.signature_names() == ["Signature1"]
    with pytest.raises(PdfObjectError, match="cycle"):
        pdf.get_signature_dictionary("Signature1")
