from __future__ import annotations

import logging
import pathlib
from collections.abc import Iterable, Iterator
from typing import Any

from pdfsig.x509.certificates import Certificate, CertificateName

logger = logging.getLogger(__name__)


class CertificateStore:
    """A list of :class:`Certificate` objects. Stores are used to resolve the
    certificate of a signer by its issuer and serial number, either from the
    certificates embedded in a signature or from certificates supplied by the
    caller.

    Note that a store carries no notion of trust: chain-of-trust validation is
    not performed by this package.
    """

    def __init__(self, *args: Certificate | Iterable[Certificate]):
        self.data: list[Certificate] = list(*args)

    def __contains__(self, item: Certificate) -> bool:
        return item in self.data

    def __len__(self) -> int:
        return len(self.data)

    def __iter__(self) -> Iterator[Certificate]:
        yield from self.data

    def __or__(self, other: CertificateStore) -> CertificateStore:
        combined = CertificateStore(self)
        combined.extend(cert for cert in other if cert not in combined)
        return combined

    def append(self, elem: Certificate) -> None:
        return self.data.append(elem)

    def extend(self, elem: Iterable[Certificate]) -> None:
        return self.data.extend(elem)

    @classmethod
    def from_path(cls, location: pathlib.Path) -> CertificateStore:
        """Loads all PEM certificates from a file, or from all files in a
        directory.
        """
        store = cls()
        files = sorted(location.glob("*")) if location.is_dir() else [location]
        for file in files:
            with file.open("rb") as f:
                store.extend(Certificate.from_pems(f.read()))
        logger.debug(f"Loaded {len(store)} certificates from {location}")
        return store

    def find_certificate(self, **kwargs: Any) -> Certificate:
        """Finds the certificate as specified by the keyword arguments. See
        :meth:`find_certificates` for all possible arguments. If there is not exactly
        1 certificate matching the parameters, an error is raised.

        :raises KeyError:
        """

        certificates = list(self.find_certificates(**kwargs))

        if len(certificates) == 0:
            raise KeyError("the specified certificate does not exist")
        elif len(certificates) > 1:
            raise KeyError("there are multiple certificates matching the query")

        return certificates[0]

    def find_certificates(
        self,
        *,
        subject: CertificateName | None = None,
        serial_number: int | None = None,
        issuer: CertificateName | None = None,
        sha256_fingerprint: str | None = None,
    ) -> Iterable[Certificate]:
        """Finds all certificates given by the specified properties. A property can be
        omitted by specifying :const:`None`. Calling this function without arguments is
        the same as iterating over this store

        :param subject: Certificate subject to look for, as :class:`CertificateName`
        :param int serial_number: Serial number to look for.
        :param issuer: Certificate issuer to look for, as :class:`CertificateName`
        :param str sha256_fingerprint: The SHA-256 fingerprint to look for
        """

        for certificate in self:
            if subject is not None and certificate.subject != subject:
                continue
            if serial_number is not None and certificate.serial_number != serial_number:
                continue
            if issuer is not None and certificate.issuer != issuer:
                continue
            if sha256_fingerprint is not None and (
                certificate.sha256_fingerprint
                != sha256_fingerprint.replace(" ", "").lower()
            ):
                continue
            yield certificate
