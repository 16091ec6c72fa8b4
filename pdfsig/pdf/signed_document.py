from __future__ import annotations

import decimal
import io
import logging
import pathlib
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from functools import cached_property
from typing import Any, BinaryIO

import pikepdf
from typing_extensions import Self

from pdfsig._typing import SignatureFields
from pdfsig.exceptions import PdfObjectError
from pdfsig.pdf.dictionary import SignatureDictionary
from pdfsig.pdf.text import decode_text

logger = logging.getLogger(__name__)

# references under these keys point back into the page tree or the document
# catalog and are never needed to read a signature
_UNRESOLVED_KEYS = frozenset({"/Data", "/Parent", "/P", "/Kids", "/Annots"})
_MAX_DEPTH = 32
_SCALARS = {
    pikepdf.ObjectType.boolean: bool,
    pikepdf.ObjectType.integer: int,
    pikepdf.ObjectType.real: float,
}


def to_python(obj: Any, _seen: frozenset = frozenset(), _depth: int = 0) -> Any:
    """Converts a :mod:`pikepdf` object into the plain values a
    :class:`SignatureDictionary` holds: names become :class:`str` without the
    leading slash, strings their raw :class:`bytes`, arrays lists and dictionaries
    dicts. Streams are not read.

    :raises PdfObjectError: if the object refers back to itself, or is nested too
        deeply
    """
    if isinstance(obj, decimal.Decimal):
        return float(obj)
    if not isinstance(obj, pikepdf.Object):
        return obj
    if _depth > _MAX_DEPTH:
        raise PdfObjectError("PDF objects are nested too deeply")
    if obj.is_indirect:
        if obj.objgen in _seen:
            raise PdfObjectError("Reference cycle at {} {} R".format(*obj.objgen))
        _seen = _seen | {obj.objgen}

    if isinstance(obj, pikepdf.Name):
        return str(obj)[1:]
    if isinstance(obj, pikepdf.String):
        return bytes(obj)
    if isinstance(obj, pikepdf.Array):
        return [to_python(item, _seen, _depth + 1) for item in obj]
    if isinstance(obj, pikepdf.Dictionary):
        result = {}
        for key, value in obj.items():
            if key in _UNRESOLVED_KEYS and isinstance(
                value, (pikepdf.Dictionary, pikepdf.Array, pikepdf.Stream)
            ):
                continue
            result[key[1:]] = to_python(value, _seen, _depth + 1)
        return result
    if obj._type_code in _SCALARS:
        return _SCALARS[obj._type_code](obj)
    return None


@dataclass(frozen=True)
class Conformance:
    """The PDF/A conformance a document claims in its XMP metadata."""

    part: str
    level: str

    def __str__(self) -> str:
        return f"PDF/A-{self.part}{self.level.lower()}"


class SignedDocument:
    """The access layer between a document and the verifier. Subclasses provide the
    raw bytes of the document and, per signature name, the signature dictionary;
    the signed-data blob is its /Contents.
    """

    def signature_names(self) -> Sequence[str]:
        """The names of the signatures, in the order of appearance in the
        document.
        """
        raise NotImplementedError

    def get_signature_dictionary(self, name: str) -> SignatureDictionary:
        raise NotImplementedError

    def get_signed_data_blob(self, name: str) -> bytes:
        return self.get_signature_dictionary(name).contents

    @property
    def document_bytes(self) -> bytes:
        raise NotImplementedError

    @property
    def current_length(self) -> int:
        return len(self.document_bytes)


class InMemorySignedDocument(SignedDocument):
    """A document for which the signature dictionaries are already known, for
    instance because they were read by another PDF library.

    :param data: The bytes of the document
    :param signatures: Mapping of signature names, in document order, to the
        entries of their signature dictionaries
    """

    def __init__(self, data: bytes, signatures: Mapping[str, SignatureFields]):
        self.data = data
        self.signatures = {
            name: SignatureDictionary(fields) for name, fields in signatures.items()
        }

    def signature_names(self) -> Sequence[str]:
        return list(self.signatures)

    def get_signature_dictionary(self, name: str) -> SignatureDictionary:
        return self.signatures[name]

    @property
    def document_bytes(self) -> bytes:
        return self.data


class PdfFile(SignedDocument):
    """A PDF file, read into memory once and parsed with :mod:`pikepdf`.

    Signatures are found through the signature fields of the interactive form, and
    named by the fully qualified name of their field. A signature dictionary that
    no field refers to gets a synthesized name such as ``Signature1``. The entries
    of a signature dictionary are only read when it is requested, so a damaged
    dictionary affects that signature alone.
    """

    def __init__(self, data: bytes, name: str | None = None):
        if not data.lstrip(b"\x00\t\n\x0c\r ").startswith(b"%PDF-"):
            raise PdfObjectError(f"{name or 'Data'} is not a PDF file")
        self.data = data
        self.name = name
        try:
            self.pdf = pikepdf.open(io.BytesIO(data))
        except pikepdf.PdfError as e:
            raise PdfObjectError(f"{self} could not be read: {e}")

    @classmethod
    def from_stream(cls, file_obj: BinaryIO, name: str | None = None) -> Self:
        return cls(file_obj.read(), name=name)

    @classmethod
    def from_path(cls, path: str | pathlib.Path) -> Self:
        """Reads the file at ``path``. The file is closed before this returns."""
        path = pathlib.Path(path)
        with path.open("rb") as f:
            return cls.from_stream(f, name=str(path))

    def __str__(self) -> str:
        return self.name or "<PdfFile>"

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self.pdf.close()

    @property
    def document_bytes(self) -> bytes:
        return self.data

    @staticmethod
    def _is_signature_value(value: Any) -> bool:
        return (
            isinstance(value, pikepdf.Dictionary)
            and "/ByteRange" in value
            and "/Contents" in value
            and str(value.get("/Type", "/Sig")) in ("/Sig", "/DocTimeStamp")
        )

    @staticmethod
    def _contents_offset(value: pikepdf.Dictionary) -> int | None:
        """Where the /Contents of a signature is stored, which is where the first
        covered range ends.
        """
        try:
            return int(value["/ByteRange"][1])
        except (TypeError, ValueError, IndexError, KeyError, pikepdf.PdfError):
            return None

    def _signature_fields(
        self,
    ) -> Iterator[tuple[str | None, pikepdf.Dictionary, pikepdf.Dictionary]]:
        """Walks the form fields, yielding the qualified name, the signature value
        and the field dictionary of every signed signature field.
        """
        acroform = self.pdf.Root.get("/AcroForm")
        if not isinstance(acroform, pikepdf.Dictionary):
            return
        fields = acroform.get("/Fields")
        if not isinstance(fields, pikepdf.Array):
            return

        visited = set()
        stack: list[tuple[Any, str, Any]] = [
            (f, "", None) for f in reversed(list(fields))
        ]
        while stack:
            field, parent_name, parent_type = stack.pop()
            if not isinstance(field, pikepdf.Dictionary):
                continue
            if field.is_indirect:
                if field.objgen in visited:
                    continue
                visited.add(field.objgen)

            partial = field.get("/T")
            name = parent_name
            if isinstance(partial, pikepdf.String):
                partial_name = decode_text(bytes(partial))
                name = ".".join(filter(None, (parent_name, partial_name)))
            # /FT is inheritable
            field_type = field.get("/FT", parent_type)

            kids = field.get("/Kids")
            if isinstance(kids, pikepdf.Array):
                stack.extend((kid, name, field_type) for kid in reversed(list(kids)))
            value = field.get("/V")
            if str(field_type) == "/Sig" and self._is_signature_value(value):
                yield name or None, value, field

    @cached_property
    def _signatures(
        self,
    ) -> dict[str, tuple[pikepdf.Dictionary, pikepdf.Dictionary | None]]:
        found: list[tuple[str | None, Any, Any]] = []
        seen_values = set()
        try:
            for name, value, field in self._signature_fields():
                if value.is_indirect:
                    if value.objgen in seen_values:
                        continue
                    seen_values.add(value.objgen)
                found.append((name, value, field))
        except pikepdf.PdfError as e:
            raise PdfObjectError(f"The form fields of {self} could not be read: {e}")

        for obj in self.pdf.objects:
            try:
                if not self._is_signature_value(obj) or obj.objgen in seen_values:
                    continue
            except pikepdf.PdfError as e:
                logger.debug(f"Skipping unreadable object {obj.objgen[0]}: {e}")
                continue
            logger.debug(f"Signature in object {obj.objgen[0]} has no signature field")
            found.append((None, obj, None))

        # document order, which is the order of the signature values in the file
        offsets = [self._contents_offset(value) for _, value, _ in found]
        order = sorted(
            range(len(found)),
            key=lambda i: (offsets[i] is None, offsets[i] or 0),
        )

        # synthesized names must not shadow the name of another field
        field_names = {name for name, _, _ in found if name is not None}
        signatures = {}
        unnamed = 0
        for index in order:
            name, value, field = found[index]
            if name is None or name in signatures:
                unnamed += 1
                name = f"Signature{unnamed}"
                while name in signatures or name in field_names:
                    unnamed += 1
                    name = f"Signature{unnamed}"
            signatures[name] = (value, field)
        return signatures

    def signature_names(self) -> Sequence[str]:
        return list(self._signatures)

    def get_signature_dictionary(self, name: str) -> SignatureDictionary:
        """Reads the entries of the signature dictionary, and the /Lock dictionary
        of its field.

        :raises PdfObjectError: if the entries can not be read
        """
        value, field = self._signatures[name]
        try:
            fields = to_python(value)
            if field is not None and "/Lock" in field:
                fields["Lock"] = to_python(field["/Lock"])
        except pikepdf.PdfError as e:
            raise PdfObjectError(f"Signature {name} could not be read: {e}")
        return SignatureDictionary(fields)

    @cached_property
    def metadata(self) -> dict[str, str]:
        """The document information dictionary (/Info), with text values decoded.

        :raises PdfObjectError: if the dictionary can not be read
        """
        result = {}
        try:
            info = self.pdf.trailer.get("/Info")
            if not isinstance(info, pikepdf.Dictionary):
                return {}
            for key, value in info.items():
                try:
                    value = to_python(value)
                except PdfObjectError as e:
                    logger.debug(f"Skipping /Info entry {key}: {e}")
                    continue
                if value is not None:
                    result[key[1:]] = decode_text(value) or ""
        except pikepdf.PdfError as e:
            raise PdfObjectError(f"The document information of {self} is damaged: {e}")
        return result

    @cached_property
    def conformance(self) -> Conformance | None:
        """The PDF/A part and conformance level from the XMP metadata, if the
        document claims any.

        :raises PdfObjectError: if the metadata stream can not be read
        """
        try:
            xmp = self.pdf.open_metadata(
                set_pikepdf_as_editor=False, update_docinfo=False
            )
            part = xmp.get("pdfaid:part")
            level = xmp.get("pdfaid:conformance")
        except pikepdf.PdfError as e:
            raise PdfObjectError(f"The XMP metadata of {self} is damaged: {e}")
        if part is None:
            return None
        return Conformance(str(part), str(level or ""))
