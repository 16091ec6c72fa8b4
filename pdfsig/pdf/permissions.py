"""Modification permissions of a signed document, and how they accumulate over the
signatures of its revisions.

The first signature of a document may be a certification signature, declaring
through ``/DocMDP`` which changes the document still permits. Any signature may
lock form fields through ``/FieldMDP`` and the ``/Lock`` dictionary of its field.
Later signatures can only narrow the permissions.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from pdfsig.exceptions import PdfObjectError
from pdfsig.pdf.dictionary import SignatureDictionary
from pdfsig.pdf.text import decode_text
from pdfsig.pdf.verification_result import SignatureWarning

logger = logging.getLogger(__name__)


class MDPPerm(enum.IntEnum):
    """A ``/DocMDP`` permission level (ISO 32000-1, table 254). Lower is
    stricter.
    """

    NO_CHANGES = 1
    """No changes to the document are permitted."""
    FILL_FORMS = 2
    """Filling in forms, instantiating page templates and signing are permitted."""
    ANNOTATE = 3
    """As :attr:`FILL_FORMS`, plus creating, deleting and modifying annotations."""

    @classmethod
    def from_value(cls, value: Any) -> MDPPerm:
        """Reads a /P value.

        An absent /P means :attr:`FILL_FORMS`, the default of ISO 32000-1 table
        254, so a certification signature without /P still narrows the
        permissions. A value outside 1-3 is not defined by ISO 32000-1 and is
        read as the strictest level, :attr:`NO_CHANGES`, rather than being
        ignored: a signer that meant to restrict the document must not end up
        granting every change.
        """
        if value is None:
            return cls.FILL_FORMS
        try:
            return cls(value)
        except ValueError:
            logger.debug(f"Unknown permission level {value!r}, assuming no changes")
            return cls.NO_CHANGES

    @property
    def fill_in_allowed(self) -> bool:
        return self >= MDPPerm.FILL_FORMS

    @property
    def annotations_allowed(self) -> bool:
        return self >= MDPPerm.ANNOTATE


class FieldLockAction(enum.Enum):
    """The scope of a ``/FieldMDP`` or ``/Lock`` rule."""

    ALL = "All"
    """The rule locks all form fields."""
    INCLUDE = "Include"
    """The rule locks the fields in :attr:`FieldLock.fields`."""
    EXCLUDE = "Exclude"
    """The rule locks all fields except those in :attr:`FieldLock.fields`."""


@dataclass(frozen=True)
class FieldLock:
    """A rule locking form fields, read from a field lock dictionary or from the
    transform parameters of a ``/FieldMDP`` reference.
    """

    action: FieldLockAction
    fields: tuple[str, ...] = ()

    def __str__(self) -> str:
        if self.action is FieldLockAction.ALL:
            return "All fields"
        return f"{self.action.value}: {', '.join(self.fields)}"

    @classmethod
    def from_pdf_object(cls, pdf_dict: Mapping[str, Any]) -> FieldLock:
        """
        :raises PdfObjectError: if /Action is missing or unknown, or /Fields is
            missing while required
        """
        try:
            action = FieldLockAction(str(pdf_dict["Action"]))
        except KeyError:
            raise PdfObjectError("/Action is required in a field lock")
        except ValueError:
            raise PdfObjectError(f"Unknown field lock /Action {pdf_dict['Action']}")

        if action is FieldLockAction.ALL:
            return cls(action)
        fields = pdf_dict.get("Fields")
        if not isinstance(fields, list):
            raise PdfObjectError("/Fields is required when /Action is not /All")
        return cls(
            action,
            tuple(
                decode_text(f) or "" for f in fields if isinstance(f, (bytes, str))
            ),
        )

    def locks(self, field_name: str) -> bool:
        """Returns whether the field with the fully qualified ``field_name`` is
        locked by this rule. Naming a non-terminal field includes all fields beneath
        it.
        """
        if self.action is FieldLockAction.ALL:
            return True

        listed = any(
            field_name == name or field_name.startswith(name + ".")
            for name in self.fields
        )
        return listed if self.action is FieldLockAction.INCLUDE else not listed


@dataclass(frozen=True)
class DeclaredRestrictions:
    """The restrictions a single signature declares."""

    certification: MDPPerm | None = None
    """The ``/DocMDP`` level, if the signature declares itself a certification
    signature.
    """
    lock_permission: MDPPerm | None = None
    """The /P entry of the field lock dictionary (PDF 2.0)."""
    field_locks: frozenset[FieldLock] = field(default_factory=frozenset)

    @classmethod
    def from_signature_dictionary(
        cls, dictionary: SignatureDictionary
    ) -> DeclaredRestrictions:
        """Reads the /Reference entries of the signature dictionary and the /Lock
        dictionary of its field.

        :raises PdfObjectError: if a field lock can not be read
        """
        certification = None
        locks = set()
        for reference in dictionary.references:
            method = str(reference.get("TransformMethod"))
            params = reference.get("TransformParams")
            if not isinstance(params, Mapping):
                params = {}
            if method == "DocMDP":
                certification = MDPPerm.from_value(params.get("P"))
            elif method == "FieldMDP":
                locks.add(FieldLock.from_pdf_object(params))
            else:
                logger.debug(f"Ignoring signature reference of type {method}")

        lock_permission = None
        if dictionary.lock is not None:
            locks.add(FieldLock.from_pdf_object(dictionary.lock))
            if "P" in dictionary.lock:
                lock_permission = MDPPerm.from_value(dictionary.lock["P"])

        return cls(certification, lock_permission, frozenset(locks))

    @property
    def _permissions(self) -> Iterable[MDPPerm]:
        declared = (self.certification, self.lock_permission)
        return (p for p in declared if p is not None)

    @property
    def declares_permissions(self) -> bool:
        return any(True for _ in self._permissions)

    @property
    def fill_in_allowed(self) -> bool:
        return all(p.fill_in_allowed for p in self._permissions)

    @property
    def annotations_allowed(self) -> bool:
        return all(p.annotations_allowed for p in self._permissions)


@dataclass(frozen=True)
class PermissionState:
    """What may still be changed in a document after a signature. States are
    chained through :meth:`narrow`, and can only become more restrictive.
    """

    is_certification_signature: bool = False
    """Whether the first signature of the document certified it."""
    fill_in_allowed: bool = True
    annotations_allowed: bool = True
    field_locks: frozenset[FieldLock] = field(default_factory=frozenset)

    @classmethod
    def initial(cls) -> PermissionState:
        """The unrestricted state of a document without signatures."""
        return cls()

    def is_field_locked(self, field_name: str) -> bool:
        return any(lock.locks(field_name) for lock in self.field_locks)

    def narrow(
        self, restrictions: DeclaredRestrictions, index: int
    ) -> tuple[PermissionState, list[SignatureWarning]]:
        """Applies the restrictions of the signature at ``index`` (in revision order,
        starting at 0) and returns the new state with any policy warnings.

        Only the first signature can certify the document. A certification declared
        by a later signature is reported, but its permission level still narrows
        the state.
        """
        warnings = []
        certification = self.is_certification_signature
        if restrictions.certification is not None:
            if index == 0:
                certification = True
            else:
                warnings.append(SignatureWarning.CERTIFICATION_NOT_FIRST)

        if restrictions.declares_permissions and (
            (restrictions.fill_in_allowed and not self.fill_in_allowed)
            or (restrictions.annotations_allowed and not self.annotations_allowed)
        ):
            warnings.append(SignatureWarning.PERMISSIONS_LOOSENED)

        state = replace(
            self,
            is_certification_signature=certification,
            fill_in_allowed=self.fill_in_allowed and restrictions.fill_in_allowed,
            annotations_allowed=(
                self.annotations_allowed and restrictions.annotations_allowed
            ),
            field_locks=self.field_locks | restrictions.field_locks,
        )
        return state, warnings


def narrow(
    state: PermissionState, restrictions: DeclaredRestrictions, index: int
) -> tuple[PermissionState, list[SignatureWarning]]:
    """Alias for :meth:`PermissionState.narrow`"""
    return state.narrow(restrictions, index)
