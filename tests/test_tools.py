import datetime
import os
import sys
import unittest

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from errors import ValidationError
from tools import DateTools, MathTools, Weight


class WeightTestCase(unittest.TestCase):
    def test_parse_number(self) -> None:
        w = Weight.parse(82.5)
        self.assertTrue(w.is_number)
        self.assertEqual(w.value, 82.5)
        self.assertEqual(Weight.parse("60").value, 60.0)
        self.assertTrue(Weight.parse(0).is_number)

    def test_parse_bodyweight_forms(self) -> None:
        self.assertTrue(Weight.parse(-1).is_bodyweight)
        self.assertTrue(Weight.parse(-1.0).is_bodyweight)
        self.assertTrue(Weight.parse("bodyweight").is_bodyweight)
        self.assertTrue(Weight.parse("BodyWeight").is_bodyweight)

    def test_parse_unset(self) -> None:
        self.assertTrue(Weight.parse(None).is_unset)
        self.assertTrue(Weight.parse("").is_unset)
        self.assertTrue(Weight.parse("  ").is_unset)

    def test_parse_rejects(self) -> None:
        for raw in (-2, -0.5, "heavy", True, float("nan"), float("inf"), [1]):
            with self.assertRaises(ValidationError):
                Weight.parse(raw)

    def test_encodings(self) -> None:
        self.assertEqual(Weight.bodyweight().to_storage(), -1.0)
        self.assertEqual(Weight.bodyweight().to_json(), "bodyweight")
        self.assertIsNone(Weight.unset().to_storage())
        self.assertIsNone(Weight.unset().to_json())
        self.assertEqual(Weight.number(40).to_json(), 40.0)
        self.assertEqual(Weight.bodyweight().load, 0.0)


class MathToolsTestCase(unittest.TestCase):
    def test_epley_1rm(self) -> None:
        self.assertAlmostEqual(MathTools.epley_1rm(100, 1), 100 * (1 + 1 / 30))
        with self.assertRaises(ValueError):
            MathTools.epley_1rm(100, -1)

    def test_estimate_1rm_rounding(self) -> None:
        self.assertEqual(MathTools.estimate_1rm(Weight.number(100), 1), 103)
        self.assertEqual(MathTools.estimate_1rm(Weight.number(100), 10), 133)
        # 90 * (1 + 5/30) = 105.0
        self.assertEqual(MathTools.estimate_1rm(Weight.number(90), 5), 105)
        # 45 * (1 + 1/30) = 46.5 rounds up
        self.assertEqual(MathTools.estimate_1rm(Weight.number(45), 1), 47)

    def test_estimate_1rm_undefined(self) -> None:
        self.assertIsNone(MathTools.estimate_1rm(Weight.unset(), 5))
        self.assertIsNone(MathTools.estimate_1rm(Weight.bodyweight(), 5))
        self.assertIsNone(MathTools.estimate_1rm(Weight.number(100), 0))
        self.assertIsNone(MathTools.estimate_1rm(Weight.number(100), None))
        self.assertIsNone(MathTools.estimate_1rm(Weight.number(0), 5))

    def test_format_1rm(self) -> None:
        self.assertEqual(MathTools.format_1rm(Weight.bodyweight(), 10), "bodyweight")
        self.assertEqual(MathTools.format_1rm(Weight.unset(), 10), "-")
        self.assertEqual(MathTools.format_1rm(Weight.number(100), 10), "133")

    def test_volume(self) -> None:
        sets = [(10, Weight.number(100.0)), (5, Weight.number(150.0))]
        self.assertEqual(MathTools.volume(sets), 10 * 100.0 + 5 * 150.0)
        self.assertEqual(MathTools.volume([]), 0.0)
        self.assertEqual(MathTools.volume([(20, Weight.bodyweight()), (None, Weight.number(50))]), 0.0)


def test_jst_date_string_crosses_midnight():
    moment = datetime.datetime(2024, 1, 1, 15, 30, tzinfo=datetime.timezone.utc)
    assert DateTools.jst_date_string(moment) == "2024-01-02"
    assert DateTools.jst_date_string(datetime.datetime(2024, 1, 1, 14, 59)) == "2024-01-01"


def test_parse_jst_date_is_midnight_jst():
    moment = DateTools.parse_jst_date("2024-03-10")
    assert moment.utcoffset() == datetime.timedelta(hours=9)
    assert moment.astimezone(datetime.timezone.utc).isoformat() == "2024-03-09T15:00:00+00:00"


@pytest.mark.parametrize("text", ["2024-1-01", "2024/01/01", "", "2024-02-30", None])
def test_validate_date_rejects(text):
    with pytest.raises(ValidationError):
        DateTools.validate_date(text)


def test_month_ranges():
    assert DateTools.month_range(datetime.date(2024, 2, 14)) == ("2024-02-01", "2024-02-29")
    now = datetime.datetime(2024, 1, 31, 16, 0, tzinfo=datetime.timezone.utc)
    assert DateTools.current_month_range(now) == ("2024-02-01", "2024-02-29")


def test_utc_timestamp_normalises_offset():
    moment = datetime.datetime(2024, 5, 1, 9, 0, tzinfo=DateTools.JST)
    assert DateTools.utc_timestamp(moment) == "2024-05-01T00:00:00+00:00"
