from __future__ import annotations

import datetime

from asn1crypto import cms, tsp

from pdfsig.exceptions import MalformedSignedDataError


def accuracy_to_python(accuracy: tsp.Accuracy) -> datetime.timedelta:
    delta = datetime.timedelta()
    if not accuracy:
        return delta

    if accuracy["seconds"].native:
        delta += datetime.timedelta(seconds=accuracy["seconds"].native)
    if accuracy["millis"].native:
        delta += datetime.timedelta(milliseconds=accuracy["millis"].native)
    if accuracy["micros"].native:
        delta += datetime.timedelta(microseconds=accuracy["micros"].native)
    return delta


def load_content_info(blob: bytes, location: str) -> cms.ContentInfo:
    """Loads a ContentInfo structure from a signature blob and makes sure that it
    wraps SignedData.

    The /Contents placeholder of a PDF signature is reserved before signing, so
    the DER structure is usually followed by zero padding, which is ignored here.
    """
    if not blob or blob[0] != 0x30:
        raise MalformedSignedDataError(f"{location} does not start with a SEQUENCE")
    try:
        content_info = cms.ContentInfo.load(blob, strict=False)
        content_type = content_info["content_type"].native
    except (ValueError, TypeError) as e:
        raise MalformedSignedDataError(f"{location} could not be parsed: {e}")

    if content_type != "signed_data":
        raise MalformedSignedDataError(
            f"{location} does not contain SignedData, but {content_type}"
        )
    return content_info
