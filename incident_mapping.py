import re
from dataclasses import dataclass
from datetime import date, datetime, time

from shapely.geometry import Point

from coordinates import reproject_point
from errors import MalformedTimestamp

SINGLE_DIGIT_HOUR = re.compile(r"^(\d)(?=:)")

CATEGORY_LABELS = {
    1: "Asesinato",
    2: "Violación",
    3: "Robo",
    4: "Agresión Agravada",
    5: "Escalamiento",
    6: "Apropiación Ilegal",
    7: "Vehículo Hurtado",
    8: "Incendio Malicioso",
}


@dataclass(frozen=True)
class IncidentRecord:
    object_id: int
    category_code: int
    category_label: str
    occurred_at: datetime
    occurred_date: date
    occurred_time: time
    occurred_year: int
    occurred_month: int
    occurred_day: int
    location: Point


def label_for(code):
    """Human-readable label for an incident-type code; unknown codes map to ""."""
    return CATEGORY_LABELS.get(code, "")


def parse_occurred_at(date_value, time_value):
    """Combine the date attribute and time-of-day string into one timestamp."""
    if isinstance(date_value, datetime):
        date_value = date_value.date()
    if isinstance(date_value, date):
        date_text = date_value.isoformat()
    else:
        # Datetime-typed columns carry a midnight time part; the real time is separate.
        date_text = str(date_value or "").strip().split("T", 1)[0]
    # fromisoformat needs a two-digit hour ("1:05" -> "01:05").
    time_text = SINGLE_DIGIT_HOUR.sub(r"0\1", str(time_value or "").strip())
    if not date_text or not time_text:
        raise MalformedTimestamp(f"Incomplete timestamp: {date_value!r} {time_value!r}")
    try:
        occurred_at = datetime.fromisoformat(f"{date_text}T{time_text}")
    except ValueError as error:
        raise MalformedTimestamp(
            f"Cannot parse timestamp from {date_value!r} and {time_value!r}"
        ) from error
    # No timezone data is stored.
    return occurred_at.replace(tzinfo=None)


def map_feature(feature, source_crs, target_crs):
    """Normalize one IncidentFeature into an IncidentRecord."""
    occurred_at = parse_occurred_at(feature.occurred_on, feature.occurred_time)
    occurred_date = occurred_at.date()
    return IncidentRecord(
        object_id=feature.object_id,
        category_code=feature.category_code,
        category_label=label_for(feature.category_code),
        occurred_at=occurred_at,
        occurred_date=occurred_date,
        occurred_time=occurred_at.time(),
        occurred_year=occurred_date.year,
        occurred_month=occurred_date.month,
        occurred_day=occurred_date.day,
        location=reproject_point(feature.geometry, source_crs, target_crs),
    )
