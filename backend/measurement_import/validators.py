"""Row Validation for Measurement Imports.

Rule-driven validation of parsed CSV rows with blocking errors,
non-blocking warnings, cross-field checks and duplicate detection.
"""

import re
import time
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timezone
from typing import Optional, Dict, List

import structlog

from .fields import MeasurementField, display_name, parse_leading_number
from .models import (
    ColumnMapping,
    CorrectionSuggestion,
    FieldRule,
    FindingSeverity,
    RuleType,
    ValidationFinding,
    ValidationResult,
    ValidationStats,
)
from .timestamps import DEFAULT_TIMEZONE, parse_timestamp

logger = structlog.get_logger(__name__)

# Rough bounding box of Japan used for the coordinate plausibility warning
JAPAN_LATITUDE = (20.0, 46.0)
JAPAN_LONGITUDE = (123.0, 146.0)


def _number_rule(field: MeasurementField, minimum: float, maximum: float, **kwargs) -> FieldRule:
    return FieldRule(field=field, type=RuleType.NUMBER, min=minimum, max=maximum, **kwargs)


DEFAULT_RULES: List[FieldRule] = [
    FieldRule(field=MeasurementField.TIMESTAMP, type=RuleType.DATE, required=True),
    _number_rule(
        MeasurementField.PH, 0, 14,
        warn_below=6.5, warn_above=8.5,
        warning_message="pH is outside the normal range (recommended 6.5-8.5)",
    ),
    _number_rule(
        MeasurementField.TEMPERATURE, -50, 100,
        warn_below=5, warn_above=35,
        warning_message="Temperature is outside the standard range (recommended 5-35°C)",
    ),
    _number_rule(
        MeasurementField.CO2_CONCENTRATION, 0, 10000,
        warn_above=1000, warning_message="CO2 concentration may be too high",
    ),
    _number_rule(MeasurementField.FLOW_RATE, 0, 100000),
    _number_rule(
        MeasurementField.IRON, 0, 1000,
        warn_above=10, warning_message="Iron concentration may be too high",
    ),
    _number_rule(
        MeasurementField.COPPER, 0, 1000,
        warn_above=1, warning_message="Copper concentration may be too high",
    ),
    _number_rule(
        MeasurementField.ZINC, 0, 1000,
        warn_above=5, warning_message="Zinc concentration may be too high",
    ),
    _number_rule(MeasurementField.TURBIDITY, 0, 1000),
    _number_rule(MeasurementField.CONDUCTIVITY, 0, 50000),
    _number_rule(MeasurementField.DISSOLVED_OXYGEN, 0, 20),
    _number_rule(MeasurementField.LATITUDE, -90, 90),
    _number_rule(MeasurementField.LONGITUDE, -180, 180),
    FieldRule(field=MeasurementField.SITE_NAME, type=RuleType.STRING),
    FieldRule(field=MeasurementField.NOTES, type=RuleType.STRING),
]


class BaseValidator(ABC):
    """Abstract base class for row validators."""

    def __init__(self):
        self.logger = logger.bind(component=self.__class__.__name__)

    @abstractmethod
    def validate(
        self, rows: List[Dict[str, str]], column_mapping: ColumnMapping, **kwargs
    ) -> ValidationResult:
        """Validate rows and return findings.

        Args:
            rows: Parsed rows keyed by header
            column_mapping: Field -> header mapping
            **kwargs: Additional validation parameters

        Returns:
            Validation result with errors and warnings
        """


class CSVValidator(BaseValidator):
    """Validates measurement rows against a field rule table."""

    def __init__(
        self,
        rules: Optional[List[FieldRule]] = None,
        tz_name: str = DEFAULT_TIMEZONE,
    ):
        """Initialize CSV validator.

        Args:
            rules: Rule table to use by default (DEFAULT_RULES when None)
            tz_name: Zone naive timestamps are read in for the future-date check
        """
        super().__init__()
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)
        self.tz_name = tz_name

    def validate(
        self,
        rows: List[Dict[str, str]],
        column_mapping: ColumnMapping,
        rules: Optional[List[FieldRule]] = None,
        row_numbers: Optional[List[int]] = None,
        **kwargs,
    ) -> ValidationResult:
        """Validate rows.

        Args:
            rows: Parsed rows keyed by header
            column_mapping: Field -> header mapping
            rules: Rule table overriding the validator's own for this call
            row_numbers: File row of each entry in `rows` (rows[0] is file
                row 2 when omitted)

        Returns:
            Validation result; ``is_valid`` is False when any error was found
        """
        start_time = time.time()
        rules_by_field = {rule.field: rule for rule in (rules if rules is not None else self.rules)}
        now = datetime.now(timezone.utc)

        errors: List[ValidationFinding] = []
        warnings: List[ValidationFinding] = []
        if row_numbers is None:
            row_numbers = list(range(2, len(rows) + 2))
        elif len(row_numbers) != len(rows):
            raise ValueError("row_numbers must have one entry per row")

        self.logger.info(
            "Starting row validation",
            rows=len(rows),
            mapped_fields=len(column_mapping.columns),
            rules_count=len(rules_by_field),
        )

        for row_number, row in zip(row_numbers, rows):
            for field, column in column_mapping.columns.items():
                rule = rules_by_field.get(field)
                if rule is None:
                    continue
                value = (row.get(column) or "").strip()
                self._check_field(rule, column, value, row_number, now, errors, warnings)

            self._check_row_logic(row, row_number, column_mapping, errors, warnings)

        self._check_duplicates(rows, row_numbers, column_mapping, errors)

        # Keep findings in file order
        errors.sort(key=lambda finding: finding.row)

        result = ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)

        self.logger.info(
            "Row validation completed",
            is_valid=result.is_valid,
            errors=len(errors),
            warnings=len(warnings),
            duration=time.time() - start_time,
        )
        return result

    def _check_field(
        self,
        rule: FieldRule,
        column: str,
        value: str,
        row_number: int,
        now: datetime,
        errors: List[ValidationFinding],
        warnings: List[ValidationFinding],
    ) -> None:
        label = display_name(rule.field)

        def error(code: str, message: str) -> None:
            errors.append(
                ValidationFinding(
                    row=row_number,
                    column=column,
                    value=value,
                    message=message,
                    severity=FindingSeverity.ERROR,
                    code=code,
                    field=rule.field,
                )
            )

        if not value:
            if rule.required:
                error("required", f"{label} is required")
            return

        if rule.type == RuleType.DATE:
            parsed = parse_timestamp(value, self.tz_name)
            if parsed is None:
                error(
                    "invalid_date",
                    f"{label} has an invalid format: invalid date (e.g. 2025-07-28 09:00:00)",
                )
            elif parsed > now:
                error("future_date", f"{label} has an invalid format: future dates are not allowed")
            return

        if rule.type != RuleType.NUMBER:
            return

        number = parse_leading_number(value)
        if number is None:
            error("not_numeric", f"{label} has an invalid format: must be a number")
            return

        if rule.min is not None and number < rule.min:
            error("below_minimum", f"{label} must be at least {rule.min:g}")
            return
        if rule.max is not None and number > rule.max:
            error("above_maximum", f"{label} must be at most {rule.max:g}")
            return

        below = rule.warn_below is not None and number < rule.warn_below
        above = rule.warn_above is not None and number > rule.warn_above
        if below or above:
            warnings.append(
                ValidationFinding(
                    row=row_number,
                    column=column,
                    value=value,
                    message=rule.warning_message or f"{label} is outside the usual range",
                    severity=FindingSeverity.WARNING,
                    code="warning_band",
                    field=rule.field,
                )
            )

    def _check_row_logic(
        self,
        row: Dict[str, str],
        row_number: int,
        column_mapping: ColumnMapping,
        errors: List[ValidationFinding],
        warnings: List[ValidationFinding],
    ) -> None:
        lat_column = column_mapping.column_for(MeasurementField.LATITUDE)
        lon_column = column_mapping.column_for(MeasurementField.LONGITUDE)
        latitude = (row.get(lat_column) or "").strip() if lat_column else ""
        longitude = (row.get(lon_column) or "").strip() if lon_column else ""

        if bool(latitude) != bool(longitude):
            errors.append(
                ValidationFinding(
                    row=row_number,
                    column=(lat_column if latitude else lon_column) or "",
                    value=latitude or longitude,
                    message="Latitude and longitude must both be given or both omitted",
                    code="coordinate_pair",
                    field=MeasurementField.LATITUDE if latitude else MeasurementField.LONGITUDE,
                )
            )

        if latitude and longitude:
            lat = parse_leading_number(latitude)
            lon = parse_leading_number(longitude)
            if lat is not None and lon is not None:
                outside = not (
                    JAPAN_LATITUDE[0] <= lat <= JAPAN_LATITUDE[1]
                    and JAPAN_LONGITUDE[0] <= lon <= JAPAN_LONGITUDE[1]
                )
                if outside:
                    warnings.append(
                        ValidationFinding(
                            row=row_number,
                            column=lat_column or "",
                            value=f"{latitude}, {longitude}",
                            message="Coordinates may be outside Japan",
                            severity=FindingSeverity.WARNING,
                            code="outside_japan",
                            field=MeasurementField.LATITUDE,
                        )
                    )

        ph_column = column_mapping.column_for(MeasurementField.PH)
        temp_column = column_mapping.column_for(MeasurementField.TEMPERATURE)
        if ph_column and temp_column:
            ph = parse_leading_number((row.get(ph_column) or "").strip())
            temperature = parse_leading_number((row.get(temp_column) or "").strip())
            if ph is not None and temperature is not None:
                if temperature > 30 and (ph < 6 or ph > 9):
                    warnings.append(
                        ValidationFinding(
                            row=row_number,
                            column=ph_column,
                            value=row.get(ph_column, ""),
                            message="pH may be abnormal for a high-temperature environment",
                            severity=FindingSeverity.WARNING,
                            code="ph_temperature",
                            field=MeasurementField.PH,
                        )
                    )

    def _check_duplicates(
        self,
        rows: List[Dict[str, str]],
        row_numbers: List[int],
        column_mapping: ColumnMapping,
        errors: List[ValidationFinding],
    ) -> None:
        ts_column = column_mapping.column_for(MeasurementField.TIMESTAMP)
        if not ts_column:
            return
        lat_column = column_mapping.column_for(MeasurementField.LATITUDE)
        lon_column = column_mapping.column_for(MeasurementField.LONGITUDE)

        seen = set()
        for row_number, row in zip(row_numbers, rows):
            timestamp = row.get(ts_column, "")
            if not timestamp:
                continue
            latitude = row.get(lat_column, "") if lat_column else ""
            longitude = row.get(lon_column, "") if lon_column else ""
            key = f"{timestamp}_{latitude}_{longitude}"
            if key in seen:
                errors.append(
                    ValidationFinding(
                        row=row_number,
                        column=ts_column,
                        value=timestamp,
                        message="Duplicate measurement for the same time and location",
                        code="duplicate_row",
                        field=MeasurementField.TIMESTAMP,
                    )
                )
            else:
                seen.add(key)

    @staticmethod
    def suggest_corrections(errors: List[ValidationFinding]) -> List[CorrectionSuggestion]:
        """Best-effort fixes for common validation errors.

        Suggestions are advisory and never applied to the data.
        """
        suggestions: List[CorrectionSuggestion] = []

        for error in errors:
            suggested_value = ""
            reason = ""

            if error.code == "not_numeric":
                match = re.search(r"[\d.]+", error.value)
                if match:
                    suggested_value = match.group(0)
                    reason = "Keep only the numeric part"

            if error.code == "invalid_date":
                match = re.search(r"(\d{4})[/-](\d{1,2})[/-](\d{1,2})", error.value)
                if match:
                    year, month, day = match.groups()
                    suggested_value = f"{year}-{int(month):02d}-{int(day):02d} 00:00:00"
                    reason = "Convert to the standard date-time format"

            if error.field is not None:
                is_ph = error.field == MeasurementField.PH
            else:
                is_ph = "ph" in error.column.lower()
            number = parse_leading_number(error.value)
            if is_ph and number is not None and number > 14:
                suggested_value = f"{number / 10:g}"
                reason = "Adjust the scale (pH is between 0 and 14)"

            if suggested_value:
                suggestions.append(
                    CorrectionSuggestion(
                        row=error.row,
                        column=error.column,
                        suggested_value=suggested_value,
                        reason=reason,
                    )
                )

        return suggestions

    def validation_stats(self, result: ValidationResult) -> ValidationStats:
        """Error counts per column and the five most common messages."""
        by_column = Counter(error.column for error in result.errors)
        by_message = Counter(error.message for error in result.errors)
        return ValidationStats(
            total_errors=len(result.errors),
            total_warnings=len(result.warnings),
            errors_by_column=dict(by_column),
            most_common_errors=[
                {"message": message, "count": count}
                for message, count in by_message.most_common(5)
            ],
        )
