"""
Finding data model for Tightwad.

This module defines the Finding class representing the per-resource
result of evaluating a control, and StatusCounts for tallying findings
by status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable


class FindingStatus(Enum):
    """Status of a finding."""

    OK = "ok"
    ALARM = "alarm"
    ERROR = "error"
    INFO = "info"
    SKIP = "skip"

    @classmethod
    def from_string(cls, value: str) -> FindingStatus:
        """
        Create FindingStatus from string value.

        Args:
            value: String representation (case-insensitive)

        Returns:
            Matching FindingStatus enum value

        Raises:
            ValueError: If value is not a valid status
        """
        value_lower = value.strip().lower()
        for status in cls:
            if status.value == value_lower:
                return status
        raise ValueError(f"Invalid status: {value}")

    @classmethod
    def from_value(cls, value: Any) -> FindingStatus:
        """
        Derive a status from a query's status column.

        Booleans map True to OK and False to ALARM. Engines without a
        boolean type report 1/0 or "true"/"false", which map the same way.
        Other strings are matched against the enum values.

        Raises:
            ValueError: If value cannot be interpreted as a status
        """
        if isinstance(value, bool):
            return cls.OK if value else cls.ALARM
        if isinstance(value, int) and value in (0, 1):
            return cls.OK if value else cls.ALARM
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in ("true", "false"):
                return cls.OK if lowered == "true" else cls.ALARM
            return cls.from_string(lowered)
        raise ValueError(f"Invalid status: {value!r}")


@dataclass(frozen=True)
class Finding:
    """
    Per-resource result of evaluating a control.

    Attributes:
        control_id: Control that produced the finding
        resource: Identifier of the evaluated resource (None for
            control-level errors)
        status: Finding status
        reason: Human-readable explanation
        row: Raw row returned by the query
    """

    control_id: str
    resource: str | None
    status: FindingStatus
    reason: str = ""
    row: dict[str, Any] = field(default_factory=dict)

    def __hash__(self) -> int:
        return hash((self.control_id, self.resource, self.status, self.reason))

    def to_dict(self, include_row: bool = True) -> dict[str, Any]:
        """
        Convert finding to dictionary representation.

        Args:
            include_row: Include the raw query row

        Returns:
            Dictionary with finding fields
        """
        data: dict[str, Any] = {
            "control_id": self.control_id,
            "resource": self.resource,
            "status": self.status.value,
            "reason": self.reason,
        }
        if include_row:
            data["row"] = dict(self.row)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Finding:
        """Create a Finding from a dictionary."""
        return cls(
            control_id=data["control_id"],
            resource=data.get("resource"),
            status=FindingStatus.from_string(data.get("status", "error")),
            reason=data.get("reason", ""),
            row=data.get("row", {}),
        )


@dataclass(frozen=True)
class StatusCounts:
    """Number of findings per status."""

    ok: int = 0
    alarm: int = 0
    error: int = 0
    info: int = 0
    skip: int = 0

    @classmethod
    def from_findings(cls, findings: Iterable[Finding]) -> StatusCounts:
        """Tally findings by status."""
        counts = {status.value: 0 for status in FindingStatus}
        for finding in findings:
            counts[finding.status.value] += 1
        return cls(**counts)

    @classmethod
    def total_of(cls, counts: Iterable[StatusCounts]) -> StatusCounts:
        """Sum a sequence of counts."""
        result = cls()
        for c in counts:
            result = result + c
        return result

    def __add__(self, other: StatusCounts) -> StatusCounts:
        if not isinstance(other, StatusCounts):
            return NotImplemented
        return StatusCounts(
            ok=self.ok + other.ok,
            alarm=self.alarm + other.alarm,
            error=self.error + other.error,
            info=self.info + other.info,
            skip=self.skip + other.skip,
        )

    @property
    def total(self) -> int:
        """Total number of findings."""
        return self.ok + self.alarm + self.error + self.info + self.skip

    def get(self, status: FindingStatus) -> int:
        """Return the count for a status."""
        return getattr(self, status.value)

    def to_dict(self) -> dict[str, int]:
        """Convert counts to dictionary."""
        return {
            "ok": self.ok,
            "alarm": self.alarm,
            "error": self.error,
            "info": self.info,
            "skip": self.skip,
            "total": self.total,
        }
