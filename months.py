"""Calendar months as stored in the revenue collection (full English names)."""

from enum import Enum
from typing import List, Union

from errors import ValidationError


class Month(str, Enum):
    JANUARY = "January"
    FEBRUARY = "February"
    MARCH = "March"
    APRIL = "April"
    MAY = "May"
    JUNE = "June"
    JULY = "July"
    AUGUST = "August"
    SEPTEMBER = "September"
    OCTOBER = "October"
    NOVEMBER = "November"
    DECEMBER = "December"

    @property
    def ordinal(self) -> int:
        """1 for January through 12 for December."""
        return _ORDER.index(self) + 1

    @classmethod
    def from_ordinal(cls, ordinal: int) -> "Month":
        if not 1 <= ordinal <= 12:
            raise ValidationError(f"Month ordinal out of range: {ordinal}")
        return _ORDER[ordinal - 1]

    @classmethod
    def parse(cls, value: Union[str, "Month"]) -> "Month":
        if isinstance(value, Month):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValidationError(
                "Invalid month name. Use full month names like January, February, etc."
            ) from None

    @classmethod
    def span(cls, start: "Month", end: "Month") -> List["Month"]:
        """Months from ``start`` to ``end`` inclusive, within one year."""
        return _ORDER[start.ordinal - 1:end.ordinal]


_ORDER = list(Month)
