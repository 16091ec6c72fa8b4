from __future__ import annotations

import datetime
import logging
import pathlib
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from pdfsig.exceptions import PdfSigError, TimestampParseError
from pdfsig.pdf.byte_range import ByteRange
from pdfsig.pdf.dictionary import SignatureDictionary
from pdfsig.pdf.parsers import get_parser
from pdfsig.pdf.permissions import DeclaredRestrictions, PermissionState
from pdfsig.pdf.signed_document import Conformance, PdfFile, SignedDocument
from pdfsig.pdf.tsp import TimestampResult, validate_timestamp
from pdfsig.pdf.verification_result import (
    SignatureStatus,
    SignatureWarning,
    SigningTimeSource,
    VerificationRecord,
)
from pdfsig.x509 import CertificateStore

logger = logging.getLogger(__name__)


@dataclass
class _SignatureEntry:
    position: int
    name: str
    dictionary: SignatureDictionary | None = None
    byte_range: ByteRange | None = None
    status: SignatureStatus = SignatureStatus.OK
    error: Exception | None = None


def _order_signatures(document: SignedDocument) -> list[_SignatureEntry]:
    """Reads the byte range of every signature, and orders the signatures by the
    end of their covered range. Signatures for which that fails are placed after
    the others, in document order.
    """
    entries = []
    for position, name in enumerate(document.signature_names()):
        status, exc, dictionary = SignatureStatus.call(
            document.get_signature_dictionary, name
        )
        entry = _SignatureEntry(position, name, dictionary, status=status, error=exc)
        if dictionary is not None:
            entry.status, entry.error, entry.byte_range = SignatureStatus.call(
                ByteRange.from_descriptor, dictionary.get("ByteRange")
            )
        if entry.error is not None:
            logger.debug(f"Unable to read the byte range of {name}: {entry.error}")
        entries.append(entry)

    return sorted(
        entries,
        key=lambda e: (
            e.byte_range is None,
            e.byte_range.end if e.byte_range is not None else 0,
            e.position,
        ),
    )


def _describe(dictionary: SignatureDictionary | None) -> dict[str, Any]:
    if dictionary is None:
        return {}
    return {
        "sub_filter": dictionary.sub_filter,
        "signer_name": dictionary.signer_name,
        "reason": dictionary.reason,
        "location": dictionary.location,
        "contact_info": dictionary.contact_info,
    }


def _verify_signature(
    document: SignedDocument,
    entry: _SignatureEntry,
    state: PermissionState,
    index: int,
    *,
    now: datetime.datetime,
    certificate_store: CertificateStore | None,
) -> tuple[dict[str, Any], PermissionState]:
    """Verifies one signature, returning the fields of its record and the
    permission state after it.

    :raises PdfSigError: for structural errors
    """
    assert entry.dictionary is not None and entry.byte_range is not None
    dictionary = entry.dictionary

    entry.byte_range.check_bounds(document.current_length)
    covered = entry.byte_range.extract(document.document_bytes)
    restrictions = DeclaredRestrictions.from_signature_dictionary(dictionary)
    blob = document.get_signed_data_blob(entry.name)
    signature = get_parser(dictionary.sub_filter).parse(
        blob, dictionary, certificate_store=certificate_store
    )
    certificate = signature.signer_certificate
    integrity_ok, authenticity_ok = signature.verify_integrity(covered.data)

    warnings = []
    timestamp_result = None
    try:
        token = signature.timestamp_token
    except TimestampParseError as e:
        logger.debug(f"Timestamp token of {entry.name} could not be parsed: {e}")
        timestamp_result = TimestampResult.failed(e)
    else:
        if token is not None:
            timestamp_result = validate_timestamp(
                token,
                signature.timestamped_data(covered.data),
                certificate_store=certificate_store,
            )
    if timestamp_result is not None and not timestamp_result.is_valid:
        warnings.append(SignatureWarning.UNTRUSTED_TIMESTAMP)

    if timestamp_result is not None and timestamp_result.is_valid:
        signing_time = timestamp_result.timestamp
        signing_time_source = SigningTimeSource.TIMESTAMP
    elif signature.signed_signing_time is not None:
        signing_time = signature.signed_signing_time
        signing_time_source = SigningTimeSource.SIGNED_ATTRIBUTE
    elif dictionary.signing_time is not None:
        signing_time = dictionary.signing_time
        signing_time_source = SigningTimeSource.SIGNATURE_DICTIONARY
    else:
        signing_time = None
        signing_time_source = SigningTimeSource.NONE

    new_state, policy_warnings = state.narrow(restrictions, index)
    warnings.extend(policy_warnings)

    fields = {
        **_describe(dictionary),
        "integrity_ok": integrity_ok,
        "authenticity_ok": authenticity_ok,
        "covers_whole_document": covered.covers_whole_document,
        "certificate_valid_at_signing": (
            certificate.validity_at(signing_time) if signing_time else None
        ),
        "certificate_valid_now": certificate.validity_at(now),
        "timestamp_result": timestamp_result,
        "warnings": tuple(warnings),
        "is_document_timestamp": signature.is_document_timestamp,
        "digest_algorithm": signature.digest_algorithm().name,
        "encryption_algorithm": signature.encryption_algorithm,
        "signer_certificate": certificate,
        "signing_time": signing_time,
        "signing_time_source": signing_time_source,
        "covered_length": len(covered),
    }
    if fields["signer_name"] is None:
        fields["signer_name"] = certificate.subject.common_name
    return fields, new_state


def verify_document(
    document: SignedDocument,
    *,
    now: datetime.datetime | None = None,
    certificate_store: CertificateStore | None = None,
) -> list[VerificationRecord]:
    """Verifies all signatures of the document, and returns one record per
    signature in revision order.

    Errors in a single signature, such as an unparsable signature value or a byte
    range outside the file, are reported in the record of that signature and do
    not affect the others. Failed cryptographic checks are never errors.

    :param document: The document to verify
    :param now: The instant to check the validity of the certificates at, defaults
        to the current time
    :param certificate_store: Certificates to use when a signature does not embed
        the certificate of its signer
    """
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)

    entries = _order_signatures(document)
    readable = [e.byte_range for e in entries if e.byte_range is not None]
    total_revisions = len(entries)

    state = PermissionState.initial()
    records = []
    for index, entry in enumerate(entries):
        revision_index = 0
        is_last = False
        if entry.byte_range is not None:
            revision_index = sum(
                1 for other in readable if entry.byte_range.contains(other)
            )
            is_last = not any(
                other.end > entry.byte_range.end for other in readable
            )

        status, exc = entry.status, entry.error
        result = None
        if status is SignatureStatus.OK:
            status, exc, result = SignatureStatus.call(
                _verify_signature,
                document,
                entry,
                state,
                index,
                now=now,
                certificate_store=certificate_store,
            )

        if result is not None:
            fields, state = result
        else:
            logger.debug(f"Signature {entry.name} failed with {status.name}: {exc}")
            fields = {
                **_describe(entry.dictionary),
                "integrity_ok": False,
                "authenticity_ok": False,
                "covers_whole_document": False,
                "certificate_valid_at_signing": None,
                "certificate_valid_now": None,
                "timestamp_result": None,
            }

        records.append(
            VerificationRecord(
                signature_name=entry.name,
                revision_index=revision_index,
                total_revisions=total_revisions,
                permission_state_after=state,
                status=status,
                error=str(exc) if exc is not None else None,
                is_last_signed_revision=is_last,
                **fields,
            )
        )
    return records


@dataclass
class FileResult:
    """The outcome of verifying one file with :func:`verify_files`."""

    path: pathlib.Path
    records: list[VerificationRecord] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)
    conformance: Conformance | None = None
    error: Exception | None = None
    """The error that prevented reading the file, if any."""


def _verify_file(path: pathlib.Path, **kwargs: Any) -> FileResult:
    result = FileResult(path)
    try:
        with PdfFile.from_path(path) as document:
            result.records = verify_document(document, **kwargs)
            result.metadata = document.metadata
            result.conformance = document.conformance
    except (OSError, PdfSigError) as e:
        logger.debug(f"Unable to verify {path}: {e}")
        result.error = e
    return result


def verify_files(
    paths: Iterable[str | pathlib.Path],
    *,
    max_workers: int | None = None,
    **kwargs: Any,
) -> Sequence[FileResult]:
    """Verifies multiple files concurrently. Each file is read once and verified by
    a single worker.

    Returns the results in the order of ``paths``. A file that can not be read
    results in a :class:`FileResult` with its :attr:`~FileResult.error` set.

    :param max_workers: The number of threads, see
        :class:`concurrent.futures.ThreadPoolExecutor`
    :param kwargs: Passed to :func:`verify_document`
    """
    paths = [pathlib.Path(p) for p in paths]
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(lambda p: _verify_file(p, **kwargs), paths))
