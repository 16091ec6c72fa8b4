from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

from pdfsig._typing import ByteRangeDescriptor
from pdfsig.exceptions import ByteRangeError, RangeOutOfBoundsError

# the gap in a signature's byte range holds the /Contents hex string
_PLACEHOLDER_RE = re.compile(rb"<[0-9A-Fa-f\s]*>")


@dataclass(frozen=True)
class CoveredBytes:
    """The bytes a signature was computed over."""

    data: bytes
    covers_whole_document: bool
    """Whether the signature covers the file as it is now, i.e. nothing has been
    appended to the document after signing.
    """

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ByteRange:
    """The /ByteRange of a signature: ordered, non-overlapping ``(offset, length)``
    pairs. Typically there are two ranges, one before and one after the /Contents
    value of the signature.
    """

    ranges: tuple[tuple[int, int], ...]

    @classmethod
    def from_descriptor(cls, values: ByteRangeDescriptor | Any) -> ByteRange:
        """Parses a flat ``[offset1 length1 offset2 length2 ...]`` descriptor.

        :raises RangeOutOfBoundsError: if any offset or length is negative
        :raises ByteRangeError: if the descriptor is malformed otherwise
        """
        if not isinstance(values, (list, tuple)) or not values:
            raise ByteRangeError(f"Invalid /ByteRange {values!r}")
        if len(values) % 2:
            raise ByteRangeError(
                f"/ByteRange must contain offset/length pairs, found {len(values)}"
                " values"
            )
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in values):
            raise ByteRangeError(f"/ByteRange must contain integers: {values!r}")
        if any(v < 0 for v in values):
            raise RangeOutOfBoundsError(f"/ByteRange has negative values: {values!r}")

        ranges = tuple(zip(values[::2], values[1::2]))
        previous_end = 0
        for offset, length in ranges:
            if offset < previous_end:
                raise ByteRangeError(
                    f"/ByteRange ranges overlap or are not ordered: {values!r}"
                )
            previous_end = offset + length
        return cls(ranges)

    def __iter__(self) -> Iterator[tuple[int, int]]:
        return iter(self.ranges)

    def __str__(self) -> str:
        return "[" + " ".join(f"{o} {length}" for o, length in self.ranges) + "]"

    @property
    def start(self) -> int:
        return self.ranges[0][0]

    @property
    def end(self) -> int:
        """The offset of the first byte after the covered range. Signatures of later
        revisions have a larger end.
        """
        offset, length = self.ranges[-1]
        return offset + length

    @property
    def covered_length(self) -> int:
        return sum(length for _, length in self.ranges)

    @property
    def gaps(self) -> list[tuple[int, int]]:
        """The ``(start, end)`` offsets of the uncovered spans between the ranges."""
        return [
            (offset + length, next_offset)
            for (offset, length), (next_offset, _) in zip(
                self.ranges, self.ranges[1:]
            )
            if offset + length < next_offset
        ]

    def _merged(self) -> list[tuple[int, int]]:
        merged: list[tuple[int, int]] = []
        for offset, length in self.ranges:
            if merged and merged[-1][1] == offset:
                merged[-1] = (merged[-1][0], offset + length)
            elif length:
                merged.append((offset, offset + length))
        return merged

    def contains(self, other: ByteRange) -> bool:
        """Returns whether every byte covered by ``other`` is covered by this range
        as well. A signature of an earlier revision is contained in the range of a
        later one.
        """
        ours = self._merged()
        return all(
            any(start <= o_start and o_end <= end for start, end in ours)
            for o_start, o_end in other._merged()
        )

    def check_bounds(self, size: int) -> None:
        """:raises RangeOutOfBoundsError: if the range exceeds a file of ``size``"""
        if self.end > size:
            raise RangeOutOfBoundsError(
                f"/ByteRange {self} exceeds the file size of {size} bytes"
            )

    def extract(self, data: bytes) -> CoveredBytes:
        """Returns the bytes covered by this range.

        The signature covers the whole document when the ranges span from the start
        to the end of ``data`` and every gap between them is exactly a hex string,
        which is where the signature value itself is stored.

        :raises RangeOutOfBoundsError: if the range points outside ``data``
        """
        self.check_bounds(len(data))
        covered = b"".join(data[o : o + length] for o, length in self.ranges)
        whole = self.start == 0 and self.end == len(data) and all(
            _PLACEHOLDER_RE.fullmatch(data, start, end) for start, end in self.gaps
        )
        return CoveredBytes(covered, whole)
