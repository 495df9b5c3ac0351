from datetime import datetime, timezone

import numpy as np
import pytest

from shardprint.errors import UnsupportedKindError
from shardprint.schema.variables import (
    MISSING_FLOAT,
    MISSING_INT,
    GatheredArray,
    ValueKind,
    VariableSpec,
    coerce_values,
    format_datetime,
    key_at_level,
    key_with_channel,
    missing_value,
)


class TestValueKind:

    @pytest.mark.parametrize(
        "name, kind",
        [
            ("int", ValueKind.INTEGER),
            ("Float", ValueKind.FLOAT),
            ("string", ValueKind.STRING),
            ("timestamp", ValueKind.DATETIME),
            ("boolean", ValueKind.BOOL),
        ],
    )
    def test_aliases(self, name, kind):
        assert ValueKind.parse(name) is kind

    def test_unknown_kind_raises(self):
        with pytest.raises(UnsupportedKindError):
            ValueKind.parse("complex")


class TestVariableSpec:

    def test_from_path_and_names(self):
        spec = VariableSpec.from_path("ObsValue/brightness_temperature", channels=[3, 7])
        assert spec.full_name == "ObsValue/brightness_temperature"
        assert spec.size == 2
        assert key_with_channel(spec, 1) == "ObsValue/brightness_temperature_7"

    def test_scalar_key_is_full_name(self):
        spec = VariableSpec("ObsValue", "air_temperature")
        assert spec.size == 1
        assert key_with_channel(spec, 0) == "ObsValue/air_temperature"

    def test_levels_sorted_and_unique(self):
        spec = VariableSpec("GeoVaLs", "air_pressure", levels=[3, 1, 3])
        assert spec.levels == (1, 3)
        assert spec.is_multi_level
        assert key_at_level(spec, 1) == "GeoVaLs/air_pressure (level 1)"

    def test_bad_path(self):
        with pytest.raises(ValueError):
            VariableSpec.from_path("no_group")


class TestMissingValues:

    def test_sentinels(self):
        assert int(MISSING_INT) == -2147483643
        assert MISSING_FLOAT.dtype == np.float32
        assert float(MISSING_FLOAT) == pytest.approx(-3.3687953e38, rel=1e-6)
        assert missing_value(ValueKind.STRING) == "MISSING*"
        assert format_datetime(missing_value(ValueKind.DATETIME)) == "9996-02-28T23:58:20Z"

    def test_gathered_array_missing(self):
        arr = GatheredArray.build(ValueKind.FLOAT, [1.0, MISSING_FLOAT])
        assert not arr.is_missing(0)
        assert arr.is_missing(1)

    def test_bool_has_no_missing(self):
        arr = GatheredArray.build(ValueKind.BOOL, [True, False])
        assert arr.values.tolist() == [1, 0]
        assert not arr.is_missing(1)

    def test_datetime_format(self):
        value = datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert format_datetime(value) == "2020-01-02T03:04:05Z"
        assert format_datetime("2020-01-02T03:04:05Z") == "2020-01-02T03:04:05Z"


class TestCoerceValues:

    def test_integers_within_int32(self):
        out = coerce_values(ValueKind.INTEGER, [1, -2, int(MISSING_INT)])
        assert out.dtype == np.int32
        assert out.tolist() == [1, -2, int(MISSING_INT)]

    @pytest.mark.parametrize("value", [2 ** 31, -(2 ** 31) - 1, 2 ** 40])
    def test_integer_overflow_raises(self, value):
        with pytest.raises(OverflowError):
            coerce_values(ValueKind.INTEGER, [0, value])

    def test_bool_becomes_int(self):
        assert coerce_values(ValueKind.BOOL, [True, False]).tolist() == [1, 0]
