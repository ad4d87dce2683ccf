"""Upload planning: choose a strategy and split a file into parts.

Everything here is pure computation on byte counts. A plan is derived
deterministically from the file size and never changes afterwards.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from cos_upload.infra.storage.client import InvalidPlanError

# Maximum part number allowed by S3-compatible services
MAX_PART_NUMBER = 10000


class UploadStrategy(str, enum.Enum):
    SIMPLE = "simple"
    MULTIPART = "multipart"


@dataclass(frozen=True, slots=True)
class PartDescriptor:
    """One contiguous byte range of the file, uploaded as a single part."""

    part_number: int
    byte_offset: int
    byte_length: int

    @property
    def end(self) -> int:
        return self.byte_offset + self.byte_length


@dataclass(frozen=True, slots=True)
class UploadPlan:
    strategy: UploadStrategy
    total_size: int
    part_size: int | None = None

    @property
    def part_count(self) -> int:
        if self.strategy is UploadStrategy.SIMPLE or not self.part_size:
            return 0
        return -(-self.total_size // self.part_size)

    def parts(self) -> tuple[PartDescriptor, ...]:
        """Descriptors covering [0, total_size) without gaps, numbered from 1.

        Only the last part may be shorter than ``part_size``.
        """
        if self.strategy is UploadStrategy.SIMPLE or not self.part_size:
            return ()
        size = self.part_size
        return tuple(
            PartDescriptor(
                part_number=index + 1,
                byte_offset=offset,
                byte_length=min(size, self.total_size - offset),
            )
            for index, offset in enumerate(range(0, self.total_size, size))
        )


def plan_upload(total_size: int, *, threshold: int, part_size: int) -> UploadPlan:
    """Classify a file of ``total_size`` bytes.

    Files of at most ``threshold`` bytes (including empty files) are sent
    in one request; larger files are split into ``ceil(total_size /
    part_size)`` parts.

    Raises:
        InvalidPlanError: For negative sizes, a non-positive part size, a
            negative threshold, or a file that would need more than
            MAX_PART_NUMBER parts.
    """
    if total_size < 0:
        raise InvalidPlanError(f"File size must not be negative, got {total_size}")
    if threshold < 0:
        raise InvalidPlanError(f"Multipart threshold must not be negative, got {threshold}")
    if part_size <= 0:
        raise InvalidPlanError(f"Part size must be positive, got {part_size}")

    if total_size <= threshold:
        return UploadPlan(strategy=UploadStrategy.SIMPLE, total_size=total_size)

    plan = UploadPlan(
        strategy=UploadStrategy.MULTIPART,
        total_size=total_size,
        part_size=part_size,
    )
    if plan.part_count > MAX_PART_NUMBER:
        raise InvalidPlanError(
            f"File of {total_size} bytes needs {plan.part_count} parts of "
            f"{part_size} bytes; at most {MAX_PART_NUMBER} are allowed"
        )
    return plan
