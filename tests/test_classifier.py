"""
Tests for threshold classification of sensor readings
"""
import pytest

from pureflow.domain.classifier import breaches, classify, highest_severity, prioritize, zone_for
from pureflow.domain.models import SensorReading, Threshold


EXAMPLE_THRESHOLDS = {
    "pH": {"min": 6.5, "max": 8},
    "temperature": {"min": 24, "max": 30},
    "salinity": {"min": 0, "max": 35},
    "tds": {"min": 60, "max": 90},
}


def by_parameter(alerts):
    return {a.parameter: a for a in alerts}


class TestClassifyExample:
    """Worked example: one high pH reading against a mixed table"""

    def test_high_ph_is_the_only_error(self) -> None:
        """pH 9.2 above max 8 is an error, the rest are normal, tds is skipped"""
        reading = {"pH": 9.2, "temperature": 27, "salinity": 20, "turbidity": 5}

        alerts = classify(reading, EXAMPLE_THRESHOLDS)
        indexed = by_parameter(alerts)

        assert [a.parameter for a in alerts] == ["pH", "temperature", "salinity"]
        assert indexed["pH"].type == "error"
        assert indexed["pH"].title == "pH High"
        assert indexed["pH"].value == 9.2
        assert indexed["pH"].threshold == Threshold(6.5, 8)
        assert indexed["temperature"].type == "normal"
        assert indexed["salinity"].type == "normal"
        assert "tds" not in indexed

    def test_alert_order_follows_threshold_table(self) -> None:
        """Output keeps the iteration order of the threshold mapping"""
        thresholds = {"salinity": {"min": 0, "max": 35}, "pH": {"min": 6.5, "max": 8}}
        alerts = classify({"pH": 7, "salinity": 10}, thresholds)
        assert [a.parameter for a in alerts] == ["salinity", "pH"]


class TestZones:
    """Decision order: critical, 5% warning zone, 2-unit proximity, normal"""

    def test_just_below_min_is_low_error(self, registry) -> None:
        thresholds = registry.get_thresholds()
        lo = thresholds["pH"].min

        alerts = [a for a in classify({"pH": lo - 0.01}, thresholds) if a.parameter == "pH"]

        assert len(alerts) == 1
        assert alerts[0].type == "error"
        assert "Low" in alerts[0].title

    def test_inside_five_percent_of_min_is_warning(self) -> None:
        """6.55 is within 5% of the [6.5, 8.5] band above min"""
        alerts = classify({"pH": 6.55}, {"pH": {"min": 6.5, "max": 8.5}})

        assert len(alerts) == 1
        assert alerts[0].type == "warning"
        assert alerts[0].title == "pH Low Warning"

    def test_inside_five_percent_of_max_is_warning(self) -> None:
        alerts = classify({"temperature": 29.9}, {"temperature": {"min": 24, "max": 30}})
        assert alerts[0].type == "warning"
        assert alerts[0].title == "Temperature High Warning"

    def test_proximity_warnings(self) -> None:
        """Outside the 5% zone but within 2 units of a bound"""
        thresholds = {"salinity": {"min": 0, "max": 35}}

        dropping = classify({"salinity": 1.9}, thresholds)[0]
        rising = classify({"salinity": 33.1}, thresholds)[0]

        assert (dropping.type, dropping.title) == ("warning", "Salinity Dropping")
        assert (rising.type, rising.title) == ("warning", "Salinity Rising")

    def test_bounds_themselves_are_not_breaches(self) -> None:
        assert zone_for(6.5, Threshold(6.5, 8.5)) == "near_min"
        assert zone_for(8.5, Threshold(6.5, 8.5)) == "near_max"

    def test_single_bound_threshold(self) -> None:
        """Only min given: no percentage zone, proximity still applies"""
        assert zone_for(-1, Threshold(min=0)) == "critical_low"
        assert zone_for(1, Threshold(min=0)) == "drop"
        assert zone_for(100, Threshold(min=0)) == "normal"
        assert zone_for(51, Threshold(max=50)) == "critical_high"

    def test_mid_band_values_are_normal(self, registry) -> None:
        """Clear of both the 5% zone and the 2-unit proximity on each side"""
        thresholds = registry.get_thresholds()
        del thresholds["pH"]  # band only 2 units wide: always within proximity
        reading = {"temperature": 28, "salinity": 2.5, "turbidity": 25}

        alerts = classify(reading, thresholds)

        assert len(alerts) == 3
        assert all(a.type == "normal" for a in alerts)
        assert prioritize(alerts) == []

    def test_narrow_band_is_always_in_proximity(self, registry) -> None:
        alerts = classify({"pH": 7.5}, registry.get_thresholds())
        assert (alerts[0].type, alerts[0].title) == ("warning", "pH Dropping")


class TestMalformedInput:
    """Bad input never raises"""

    @pytest.mark.parametrize("reading", [None, [], "pH=7", 42])
    def test_absent_or_malformed_reading_yields_nothing(self, reading, registry) -> None:
        assert classify(reading, registry.get_thresholds()) == []

    def test_missing_thresholds_yield_nothing(self) -> None:
        assert classify({"pH": 7}, None) == []

    def test_non_numeric_value_is_skipped(self) -> None:
        thresholds = {"pH": {"min": 6.5, "max": 8.5}, "temperature": {"min": 24, "max": 30}}
        alerts = classify({"pH": "abc", "temperature": True}, thresholds)
        assert alerts == []

    def test_numeric_strings_are_coerced(self) -> None:
        alerts = classify({"pH": "9.0"}, {"pH": {"min": 6.5, "max": 8.5}})
        assert alerts[0].type == "error"
        assert alerts[0].value == 9.0

    def test_malformed_threshold_entry_is_skipped(self) -> None:
        thresholds = {"pH": "6.5-8.5", "temperature": {"min": 24, "max": 30}}
        alerts = classify({"pH": 4, "temperature": 27}, thresholds)
        assert [a.parameter for a in alerts] == ["temperature"]


class TestSequencesAndRain:
    """Latest-of-sequence handling and the rain info alert"""

    def test_sequence_uses_last_reading(self) -> None:
        thresholds = {"temperature": {"min": 24, "max": 30}}
        readings = [{"temperature": 40}, {"temperature": 27, "datetime": "2024-05-01T10:00:00Z"}]

        alerts = classify(readings, thresholds)

        assert alerts[0].type == "normal"
        assert alerts[0].timestamp == "2024-05-01T10:00:00Z"

    def test_sensor_reading_instance_is_accepted(self) -> None:
        reading = SensorReading(datetime="2024-05-01T10:00:00Z", pH=5.0)
        alerts = classify(reading, {"pH": {"min": 6.5, "max": 8.5}})
        assert alerts[0].title == "pH Low"

    @pytest.mark.parametrize("flag", [True, 1, "true"])
    def test_rain_appends_info_alert(self, flag) -> None:
        alerts = classify({"pH": 7.5, "isRaining": flag}, {"pH": {"min": 6.5, "max": 8.5}})

        assert alerts[-1].parameter == "rain"
        assert alerts[-1].type == "info"
        assert alerts[-1].title == "Rain Detected"

    def test_heavy_rain(self) -> None:
        alerts = classify({"isRaining": 2}, {})
        assert [a.title for a in alerts] == ["Heavy Rain Detected"]

    @pytest.mark.parametrize("flag", [False, 0, "false", None])
    def test_no_rain_no_info_alert(self, flag) -> None:
        assert classify({"isRaining": flag}, {}) == []


class TestPurityAndRanking:
    """Determinism and the ranking helpers"""

    def test_classify_is_idempotent(self, registry) -> None:
        reading = {"pH": 9.1, "temperature": 29.9, "salinity": 1, "turbidity": 10, "isRaining": True}
        thresholds = registry.get_thresholds()

        assert classify(reading, thresholds) == classify(reading, thresholds)

    def test_timestamp_absent_without_reading_datetime(self) -> None:
        alerts = classify({"pH": 7.5}, {"pH": {"min": 6.5, "max": 8.5}})
        assert alerts[0].timestamp is None

    def test_prioritize_and_breaches(self) -> None:
        thresholds = {
            "pH": {"min": 6.5, "max": 8.5},
            "temperature": {"min": 24, "max": 30},
            "salinity": {"min": 0, "max": 5},
        }
        alerts = classify({"pH": 6.55, "temperature": 35, "salinity": 2.5, "isRaining": 1}, thresholds)

        ranked = prioritize(alerts)

        assert [a.type for a in ranked] == ["error", "warning", "info"]
        assert [a.parameter for a in breaches(alerts)] == ["temperature"]
        assert highest_severity(alerts) == "error"
        assert highest_severity([]) is None
