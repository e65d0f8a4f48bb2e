import calendar
import datetime
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from errors import ValidationError


@dataclass(frozen=True)
class Weight:
    """Tagged weight value: a number, bodyweight or unset.

    The stores keep the original encoding (a real number, ``-1`` for
    bodyweight, ``NULL`` for unset); everything above the repositories works
    with this variant instead of the sentinel.
    """

    NUMBER = "number"
    BODYWEIGHT = "bodyweight"
    UNSET = "unset"
    SENTINEL = -1.0

    kind: str
    value: Optional[float] = None

    @classmethod
    def number(cls, value: float) -> "Weight":
        return cls(cls.NUMBER, float(value))

    @classmethod
    def bodyweight(cls) -> "Weight":
        return cls(cls.BODYWEIGHT)

    @classmethod
    def unset(cls) -> "Weight":
        return cls(cls.UNSET)

    @classmethod
    def parse(cls, raw: object) -> "Weight":
        """Build a weight from a stored or submitted value."""
        if isinstance(raw, Weight):
            return raw
        if raw is None:
            return cls.unset()
        if isinstance(raw, bool):
            raise ValidationError("weight must be a number or 'bodyweight'")
        if isinstance(raw, str):
            text = raw.strip()
            if not text:
                return cls.unset()
            if text.lower() == cls.BODYWEIGHT:
                return cls.bodyweight()
            try:
                raw = float(text)
            except ValueError:
                raise ValidationError("weight must be a number or 'bodyweight'")
        if not isinstance(raw, (int, float)):
            raise ValidationError("weight must be a number or 'bodyweight'")
        value = float(raw)
        if math.isnan(value) or math.isinf(value):
            raise ValidationError("weight must be finite")
        if value == cls.SENTINEL:
            return cls.bodyweight()
        if value < 0:
            raise ValidationError("weight must be non-negative")
        return cls.number(value)

    @property
    def is_number(self) -> bool:
        return self.kind == self.NUMBER

    @property
    def is_bodyweight(self) -> bool:
        return self.kind == self.BODYWEIGHT

    @property
    def is_unset(self) -> bool:
        return self.kind == self.UNSET

    @property
    def load(self) -> float:
        """External load in kg; bodyweight and unset carry none."""
        return self.value if self.is_number else 0.0

    def to_storage(self) -> Optional[float]:
        if self.is_number:
            return self.value
        if self.is_bodyweight:
            return self.SENTINEL
        return None

    def to_json(self) -> float | str | None:
        if self.is_number:
            return self.value
        if self.is_bodyweight:
            return self.BODYWEIGHT
        return None


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    EPLEY_DIVISOR: float = 30.0

    @staticmethod
    def round_half_up(value: float) -> int:
        """Round to the nearest integer with halves going up."""
        return int(math.floor(value + 0.5))

    @classmethod
    def epley_1rm(cls, weight: float, reps: int) -> float:
        """Return the estimated one-rep max using the Epley formula."""
        if reps < 0:
            raise ValueError("reps must be non-negative")
        return weight * (1 + reps / cls.EPLEY_DIVISOR)

    @classmethod
    def estimate_1rm(cls, weight: Weight, reps: Optional[int]) -> Optional[int]:
        """Rounded Epley estimate, or ``None`` when it is undefined."""
        if not weight.is_number or reps is None or reps <= 0 or weight.value <= 0:
            return None
        return cls.round_half_up(cls.epley_1rm(weight.value, reps))

    @classmethod
    def format_1rm(cls, weight: Weight, reps: Optional[int]) -> str:
        if weight.is_bodyweight:
            return Weight.BODYWEIGHT
        estimate = cls.estimate_1rm(weight, reps)
        return "-" if estimate is None else str(estimate)

    @staticmethod
    def set_volume(weight: Weight, reps: Optional[int]) -> float:
        """Weight times reps; bodyweight, unset weight and missing reps count as zero."""
        return weight.load * (reps or 0)

    @classmethod
    def volume(cls, sets: Iterable[Tuple[Optional[int], Weight]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            vol += cls.set_volume(weight, reps)
        return vol


class DateTools:
    """Calendar-day helpers pinned to Japan Standard Time."""

    JST = datetime.timezone(datetime.timedelta(hours=9), "JST")

    @staticmethod
    def utc_timestamp(moment: datetime.datetime | None = None) -> str:
        moment = moment or datetime.datetime.now(datetime.timezone.utc)
        return moment.astimezone(datetime.timezone.utc).isoformat()

    @classmethod
    def jst_date_string(cls, moment: datetime.datetime) -> str:
        """``YYYY-MM-DD`` of ``moment`` in JST; naive values are taken as UTC."""
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=datetime.timezone.utc)
        return moment.astimezone(cls.JST).date().isoformat()

    @classmethod
    def current_jst_date_string(cls, now: datetime.datetime | None = None) -> str:
        return cls.jst_date_string(now or datetime.datetime.now(datetime.timezone.utc))

    @classmethod
    def parse_jst_date(cls, text: str) -> datetime.datetime:
        """Midnight JST of a ``YYYY-MM-DD`` string."""
        day = datetime.date.fromisoformat(cls.validate_date(text))
        return datetime.datetime(day.year, day.month, day.day, tzinfo=cls.JST)

    @staticmethod
    def validate_date(text: str) -> str:
        """Return ``text`` if it is a zero-padded ``YYYY-MM-DD`` date."""
        try:
            day = datetime.date.fromisoformat(text)
        except (TypeError, ValueError):
            raise ValidationError("date must be in YYYY-MM-DD format")
        if day.isoformat() != text:
            raise ValidationError("date must be in YYYY-MM-DD format")
        return text

    @staticmethod
    def month_range(day: datetime.date) -> tuple[str, str]:
        """First and last day of the month containing ``day``."""
        last = calendar.monthrange(day.year, day.month)[1]
        start = day.replace(day=1)
        end = day.replace(day=last)
        return start.isoformat(), end.isoformat()

    @classmethod
    def current_month_range(cls, now: datetime.datetime | None = None) -> tuple[str, str]:
        today = datetime.date.fromisoformat(cls.current_jst_date_string(now))
        return cls.month_range(today)
