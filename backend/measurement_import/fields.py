"""Measurement field catalogue.

Logical fields a CSV column can be mapped to, with their display names,
plausibility ranges, auto-detection patterns and numeric coercion helpers.
"""

import re
from enum import Enum
from typing import Optional, Dict, List, Pattern, Tuple


class MeasurementField(str, Enum):
    """Logical measurement fields."""

    TIMESTAMP = "timestamp"
    TYPE = "type"
    PH = "ph"
    TEMPERATURE = "temperature"
    CO2_CONCENTRATION = "co2_concentration"
    FLOW_RATE = "flow_rate"
    IRON = "iron"
    COPPER = "copper"
    ZINC = "zinc"
    TURBIDITY = "turbidity"
    CONDUCTIVITY = "conductivity"
    DISSOLVED_OXYGEN = "dissolved_oxygen"
    LATITUDE = "latitude"
    LONGITUDE = "longitude"
    SITE_NAME = "site_name"
    NOTES = "notes"

    # Value fields without a template column
    HUMIDITY = "humidity"
    AIR_PRESSURE = "air_pressure"
    WIND_SPEED = "wind_speed"
    SOIL_PH = "soil_ph"
    SOIL_MOISTURE = "soil_moisture"
    ORGANIC_MATTER = "organic_matter"
    LEAD = "lead"
    CADMIUM = "cadmium"
    PROCESSED_VOLUME = "processed_volume"
    CO2_CAPTURED = "co2_captured"
    MINERAL_PRECIPITATION = "mineral_precipitation"


class MeasurementType(str, Enum):
    """Kind of environmental reading."""

    WATER_QUALITY = "water_quality"
    ATMOSPHERIC = "atmospheric"
    SOIL = "soil"


# Columns of the downloadable template, in order
TEMPLATE_FIELDS: List[MeasurementField] = [
    MeasurementField.TIMESTAMP,
    MeasurementField.TYPE,
    MeasurementField.PH,
    MeasurementField.TEMPERATURE,
    MeasurementField.CO2_CONCENTRATION,
    MeasurementField.FLOW_RATE,
    MeasurementField.IRON,
    MeasurementField.COPPER,
    MeasurementField.ZINC,
    MeasurementField.TURBIDITY,
    MeasurementField.CONDUCTIVITY,
    MeasurementField.DISSOLVED_OXYGEN,
    MeasurementField.LATITUDE,
    MeasurementField.LONGITUDE,
    MeasurementField.SITE_NAME,
    MeasurementField.NOTES,
]

# Hard plausibility bounds (inclusive) for numeric values. A mapped value
# outside its range rejects the whole row.
PLAUSIBILITY_RANGES: Dict[MeasurementField, Tuple[float, float]] = {
    MeasurementField.PH: (0, 14),
    MeasurementField.TEMPERATURE: (-50, 100),
    MeasurementField.TURBIDITY: (0, 1000),
    MeasurementField.CONDUCTIVITY: (0, 50000),
    MeasurementField.DISSOLVED_OXYGEN: (0, 20),
    MeasurementField.CO2_CONCENTRATION: (0, 10000),
    MeasurementField.HUMIDITY: (0, 100),
    MeasurementField.AIR_PRESSURE: (800, 1200),
    MeasurementField.WIND_SPEED: (0, 100),
    MeasurementField.SOIL_PH: (0, 14),
    MeasurementField.SOIL_MOISTURE: (0, 100),
    MeasurementField.ORGANIC_MATTER: (0, 100),
    MeasurementField.IRON: (0, 1000),
    MeasurementField.COPPER: (0, 1000),
    MeasurementField.ZINC: (0, 1000),
    MeasurementField.LEAD: (0, 100),
    MeasurementField.CADMIUM: (0, 10),
    MeasurementField.FLOW_RATE: (0, 100000),
    MeasurementField.PROCESSED_VOLUME: (0, 1000000),
    MeasurementField.CO2_CAPTURED: (0, 100000),
    MeasurementField.MINERAL_PRECIPITATION: (0, 100000),
}

# Fields that land in MeasurementCreateRequest.values, in mapping order
NUMERIC_VALUE_FIELDS: List[MeasurementField] = [
    MeasurementField.PH,
    MeasurementField.TEMPERATURE,
    MeasurementField.TURBIDITY,
    MeasurementField.CONDUCTIVITY,
    MeasurementField.DISSOLVED_OXYGEN,
    MeasurementField.CO2_CONCENTRATION,
    MeasurementField.HUMIDITY,
    MeasurementField.AIR_PRESSURE,
    MeasurementField.WIND_SPEED,
    MeasurementField.SOIL_PH,
    MeasurementField.SOIL_MOISTURE,
    MeasurementField.ORGANIC_MATTER,
    MeasurementField.IRON,
    MeasurementField.COPPER,
    MeasurementField.ZINC,
    MeasurementField.LEAD,
    MeasurementField.CADMIUM,
    MeasurementField.FLOW_RATE,
    MeasurementField.PROCESSED_VOLUME,
    MeasurementField.CO2_CAPTURED,
    MeasurementField.MINERAL_PRECIPITATION,
]

DISPLAY_NAMES: Dict[MeasurementField, str] = {
    MeasurementField.TIMESTAMP: "Timestamp",
    MeasurementField.TYPE: "Measurement type",
    MeasurementField.PH: "pH",
    MeasurementField.TEMPERATURE: "Temperature",
    MeasurementField.CO2_CONCENTRATION: "CO2 concentration",
    MeasurementField.FLOW_RATE: "Flow rate",
    MeasurementField.IRON: "Iron concentration",
    MeasurementField.COPPER: "Copper concentration",
    MeasurementField.ZINC: "Zinc concentration",
    MeasurementField.TURBIDITY: "Turbidity",
    MeasurementField.CONDUCTIVITY: "Conductivity",
    MeasurementField.DISSOLVED_OXYGEN: "Dissolved oxygen",
    MeasurementField.LATITUDE: "Latitude",
    MeasurementField.LONGITUDE: "Longitude",
    MeasurementField.SITE_NAME: "Site name",
    MeasurementField.NOTES: "Notes",
}

# Header auto-detection table. Order matters: each header is offered to the
# fields top to bottom and the first unclaimed match wins.
COLUMN_PATTERNS: List[Tuple[MeasurementField, List[Pattern[str]]]] = [
    (MeasurementField.TIMESTAMP, [re.compile(p, re.I) for p in (r"timestamp", r"日時", r"time", r"date")]),
    (MeasurementField.TYPE, [re.compile(p, re.I) for p in (r"^type$", r"種別", r"種類")]),
    (MeasurementField.PH, [re.compile(p, re.I) for p in (r"^ph$", r"ペーハー", r"水素イオン")]),
    (MeasurementField.TEMPERATURE, [re.compile(p, re.I) for p in (r"temp", r"温度", r"気温", r"水温")]),
    (MeasurementField.CO2_CONCENTRATION, [re.compile(p, re.I) for p in (r"co2", r"二酸化炭素", r"炭酸ガス")]),
    (MeasurementField.FLOW_RATE, [re.compile(p, re.I) for p in (r"flow", r"流量", r"流速")]),
    (MeasurementField.IRON, [re.compile(p, re.I) for p in (r"iron", r"fe", r"鉄")]),
    (MeasurementField.COPPER, [re.compile(p, re.I) for p in (r"copper", r"cu", r"銅")]),
    (MeasurementField.ZINC, [re.compile(p, re.I) for p in (r"zinc", r"zn", r"亜鉛")]),
    (MeasurementField.TURBIDITY, [re.compile(p, re.I) for p in (r"turbidity", r"濁度", r"濁り")]),
    (MeasurementField.CONDUCTIVITY, [re.compile(p, re.I) for p in (r"conductivity", r"電気伝導度", r"導電率")]),
    (MeasurementField.DISSOLVED_OXYGEN, [re.compile(p, re.I) for p in (r"oxygen", r"溶存酸素", r"do")]),
    (MeasurementField.LATITUDE, [re.compile(p, re.I) for p in (r"lat", r"緯度")]),
    (MeasurementField.LONGITUDE, [re.compile(p, re.I) for p in (r"lon", r"lng", r"経度")]),
    (MeasurementField.SITE_NAME, [re.compile(p, re.I) for p in (r"site", r"場所", r"地点", r"location")]),
    (MeasurementField.NOTES, [re.compile(p, re.I) for p in (r"note", r"memo", r"メモ", r"備考", r"comment")]),
]

# Keyword -> type, checked in order against the lower-cased cell
TYPE_KEYWORDS: List[Tuple[MeasurementType, Tuple[str, ...]]] = [
    (MeasurementType.WATER_QUALITY, ("水質", "water")),
    (MeasurementType.ATMOSPHERIC, ("大気", "atmospheric", "air")),
    (MeasurementType.SOIL, ("土壌", "soil")),
]

_LEADING_NUMBER = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

# Unit symbols stripped from numeric cells before parsing
_UNIT_CHARACTERS = re.compile(r"[°℃%ppmL/minmg/LhPam/sNTUμS/cmkg]")


def display_name(field: MeasurementField) -> str:
    """Human-readable label for a field."""
    return DISPLAY_NAMES.get(field, field.value)


def parse_leading_number(value: str) -> Optional[float]:
    """Parse the numeric prefix of a string.

    ``"7.2mg"`` reads as 7.2 and ``"abc"`` as None, matching how spreadsheet
    exports with trailing units are read.
    """
    match = _LEADING_NUMBER.match(value)
    if not match:
        return None
    return float(match.group(0))


def clean_numeric_text(value: str) -> str:
    """Drop thousands separators and unit characters from a numeric cell."""
    return _UNIT_CHARACTERS.sub("", value.replace(",", ""))


def detect_type(value: str) -> Optional[MeasurementType]:
    """Guess a measurement type from a free-text cell."""
    lowered = value.strip().lower()
    if not lowered:
        return None
    for measurement_type, keywords in TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return measurement_type
    return None
