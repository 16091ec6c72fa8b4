"""Parsers for the signature value formats of PDF, selected by the /SubFilter of
the signature dictionary.
"""

from __future__ import annotations

import logging
from typing import ClassVar

from pdfsig.pdf.dictionary import SignatureDictionary
from pdfsig.pdf.signed_data import (
    CmsSignature,
    DocumentTimestamp,
    PdfSignature,
    PdfSignedData,
    RawRsaSignature,
    Sha1CmsSignature,
    load_raw_signature,
    load_timestamp_token,
)
from pdfsig.x509 import CertificateStore

logger = logging.getLogger(__name__)


class SignedDataParser:
    """Parses the signed-data blob of a signature into a :class:`PdfSignature`."""

    sub_filters: ClassVar[tuple[str, ...]] = ()

    def parse(
        self,
        blob: bytes,
        dictionary: SignatureDictionary,
        *,
        certificate_store: CertificateStore | None = None,
    ) -> PdfSignature:
        """
        :param blob: The signed-data blob, i.e. the value of /Contents
        :param dictionary: The signature dictionary
        :param certificate_store: Certificates supplied by the caller
        :raises MalformedSignedDataError: if the blob can not be parsed
        """
        raise NotImplementedError


class DetachedCmsParser(SignedDataParser):
    sub_filters = ("adbe.pkcs7.detached", "ETSI.CAdES.detached")
    signature_class: ClassVar[type[CmsSignature]] = CmsSignature

    def parse(
        self,
        blob: bytes,
        dictionary: SignatureDictionary,
        *,
        certificate_store: CertificateStore | None = None,
    ) -> PdfSignature:
        return self.signature_class(
            PdfSignedData.from_envelope(blob), dictionary, certificate_store
        )


class Sha1CmsParser(DetachedCmsParser):
    sub_filters = ("adbe.pkcs7.sha1",)
    signature_class = Sha1CmsSignature


class RawRsaParser(SignedDataParser):
    sub_filters = ("adbe.x509.rsa_sha1",)

    def parse(
        self,
        blob: bytes,
        dictionary: SignatureDictionary,
        *,
        certificate_store: CertificateStore | None = None,
    ) -> PdfSignature:
        return RawRsaSignature(load_raw_signature(blob), dictionary, certificate_store)


class DocumentTimestampParser(SignedDataParser):
    sub_filters = ("ETSI.RFC3161",)

    def parse(
        self,
        blob: bytes,
        dictionary: SignatureDictionary,
        *,
        certificate_store: CertificateStore | None = None,
    ) -> PdfSignature:
        return DocumentTimestamp(
            load_timestamp_token(blob), dictionary, certificate_store
        )


PARSERS: tuple[SignedDataParser, ...] = (
    DetachedCmsParser(),
    Sha1CmsParser(),
    RawRsaParser(),
    DocumentTimestampParser(),
)


def get_parser(sub_filter: str | None) -> SignedDataParser:
    """Returns the parser for the /SubFilter. Unknown subfilters are treated as
    detached CMS signatures, which is what almost all signers produce.
    """
    for parser in PARSERS:
        if sub_filter in parser.sub_filters:
            return parser
    logger.debug(f"Unknown /SubFilter {sub_filter}, parsing as detached CMS")
    return PARSERS[0]
