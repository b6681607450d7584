"""
Data-quality issues found while converting a model.

Non-critical problems (missing spatial data, empty elements) don't stop
the conversion: the affected element is left out and an issue is recorded
on the resulting model instead.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class IssueSeverity(Enum):
    """Severity level of conversion issues."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class ConversionIssue:
    """A single conversion issue tied to an item."""
    code: str
    severity: IssueSeverity
    message: str
    item_id: Optional[int] = None

    def __str__(self) -> str:
        where = f" (item {self.item_id})" if self.item_id is not None else ""
        return f"[{self.severity.value.upper()}] {self.code}: {self.message}{where}"

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'severity': self.severity.value,
            'message': self.message,
            'item_id': self.item_id,
        }
