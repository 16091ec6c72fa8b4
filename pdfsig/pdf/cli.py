from __future__ import annotations

import argparse
import logging
import pathlib
import re
import textwrap
from collections.abc import Iterable, Iterator

from pdfsig.pdf.permissions import PermissionState
from pdfsig.pdf.tsp import TimestampResult
from pdfsig.pdf.verification_result import VerificationRecord
from pdfsig.pdf.verifier import FileResult, verify_files
from pdfsig.x509 import Certificate, CertificateStore


def indent_text(*items: str, indent: int = 4) -> str:
    return "\n".join(textwrap.indent(item, " " * indent) for item in items)


def list_item(*items: str, indent: int = 4) -> str:
    return re.sub(r"^( *) {2}", r"\1- ", indent_text(*items, indent=indent))


def yes_no(value: bool | None) -> str:
    if value is None:
        return "unknown"
    return "yes" if value else "no"


def format_certificate(cert: Certificate, indent: int = 4) -> str:
    return list_item(
        f"Subject: {cert.subject.dn}",
        f"Issuer: {cert.issuer.dn}",
        f"Serial: {cert.serial_number}",
        f"Valid from: {cert.valid_from}",
        f"Valid to: {cert.valid_to}",
        indent=indent,
    )


def describe_timestamp(result: TimestampResult) -> list[str]:
    lines = [
        f"Timestamp: {result.timestamp}",
        f"Timestamp service: {result.tsa_name}",
        f"Timestamp signature verified: {yes_no(result.token_signature_valid)}",
        f"Timestamp imprint matches: {yes_no(result.imprint_matches)}",
    ]
    if result.tsa_certificate_valid is not None:
        lines.append(
            f"TSA certificate at timestamp: {result.tsa_certificate_valid.value}"
        )
    if result.error:
        lines.append(f"Timestamp error: {result.error}")
    return lines


def describe_permissions(state: PermissionState, certification: bool) -> list[str]:
    lines = [
        "Signature type: " + ("certification" if certification else "approval"),
        f"Filling out fields allowed: {yes_no(state.fill_in_allowed)}",
        f"Adding annotations allowed: {yes_no(state.annotations_allowed)}",
    ]
    for lock in sorted(state.field_locks, key=str):
        lines.append(list_item(f"Lock: {lock}", indent=2))
    return lines


def describe_record(record: VerificationRecord, certification: bool) -> list[str]:
    lines = [
        f"Signature covers whole document: {yes_no(record.covers_whole_document)}",
        f"Document revision: {record.revision_index} of {record.total_revisions}",
        f"Status: {record.status.name}",
    ]
    if record.error:
        lines.append(f"Error: {record.error}")
        return lines

    lines += [
        f"Integrity check OK? {yes_no(record.integrity_ok)}",
        f"Authenticity check OK? {yes_no(record.authenticity_ok)}",
        f"Digest algorithm: {record.digest_algorithm}",
        f"Encryption algorithm: {record.encryption_algorithm}",
        f"Filter subtype: {record.sub_filter}",
    ]
    if record.is_document_timestamp:
        lines.append("Document timestamp")
    if record.signer_certificate is not None:
        lines += [
            "Signer certificate:",
            format_certificate(record.signer_certificate),
        ]
    lines += [
        "Certificate valid at signing time: "
        + (
            record.certificate_valid_at_signing.value
            if record.certificate_valid_at_signing
            else "unknown"
        ),
        "Certificate valid now: "
        + (
            record.certificate_valid_now.value
            if record.certificate_valid_now
            else "unknown"
        ),
        f"Signed by: {record.signer_name}",
        f"Signing time: {record.signing_time}"
        f" ({record.signing_time_source.value})",
    ]
    if record.timestamp_result is not None:
        lines += describe_timestamp(record.timestamp_result)
    for label, value in (
        ("Location", record.location),
        ("Reason", record.reason),
        ("Contact info", record.contact_info),
    ):
        if value:
            lines.append(f"{label}: {value}")
    lines += describe_permissions(record.permission_state_after, certification)
    for warning in record.warnings:
        lines.append(f"Warning: {warning.value}")
    return lines


def describe_records(records: list[VerificationRecord]) -> list[str]:
    if not records:
        return ["No signatures"]
    lines = []
    for index, record in enumerate(records):
        certification = (
            index == 0 and record.permission_state_after.is_certification_signature
        )
        lines += [
            f"===== {record.signature_name} =====",
            indent_text(*describe_record(record, certification)),
        ]
    return lines


def find_pdf_files(paths: Iterable[pathlib.Path]) -> Iterator[pathlib.Path]:
    for path in paths:
        if path.is_dir():
            yield from sorted(
                p
                for p in path.rglob("*")
                if p.suffix.lower() == ".pdf" and p.is_file()
            )
        else:
            yield path


def describe_file(result: FileResult, meta: bool = False) -> list[str]:
    if result.error is not None:
        return [f"Error while reading: {result.error}"]

    lines = describe_records(result.records)
    conformance = result.conformance
    lines.append(
        "Document conformance: "
        + (f"{conformance.level}/{conformance.part}" if conformance else "none")
    )
    if meta:
        lines.append("Metadata:")
        lines += [
            indent_text(f"{key}: {value}") for key, value in result.metadata.items()
        ]
    return lines


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError(f"{value} is not a positive number")
    return number


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Verify PDF signatures")
    parser.add_argument(
        "paths",
        nargs="*",
        help="PDF files, or directories to search for PDF files",
        type=pathlib.Path,
        default=[pathlib.Path(".")],
    )
    parser.add_argument(
        "--certificates",
        help="PEM file or directory of PEM files with signer certificates that are"
        " not embedded in the signatures",
        type=pathlib.Path,
    )
    parser.add_argument(
        "--meta",
        action="store_true",
        help="Print the document information dictionary as well.",
    )
    parser.add_argument(
        "--jobs",
        "-j",
        type=positive_int,
        default=1,
        help="Number of files to verify concurrently.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print debug logging.",
    )
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    certificate_store = None
    if args.certificates:
        certificate_store = CertificateStore.from_path(args.certificates)

    files = list(find_pdf_files(args.paths))
    results = verify_files(
        files, max_workers=args.jobs, certificate_store=certificate_store
    )
    for result in results:
        print(f"{result.path}:")
        print(indent_text(*describe_file(result, meta=args.meta)))


if __name__ == "__main__":
    main()
