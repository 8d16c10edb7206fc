import datetime as dt
import unittest

from bsi_telemetry.services.telemetry_service import (
    bucket_minutes_for,
    bucket_rows,
    bucket_start,
    parse_time_filter,
    resolve_window,
)

UTC = dt.timezone.utc


class TimeWindowTests(unittest.TestCase):
    def setUp(self):
        self.anchor = dt.datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def test_window_ends_at_anchor(self):
        w = resolve_window(self.anchor, "1h")
        self.assertEqual(w.time_filter, "1h")
        self.assertEqual(w.minutes, 60)
        self.assertEqual(w.end, self.anchor)
        self.assertEqual(w.start, dt.datetime(2024, 1, 1, 11, 0, tzinfo=UTC))

    def test_bounds_are_inclusive(self):
        w = resolve_window(self.anchor, "1h")
        self.assertTrue(w.contains(dt.datetime(2024, 1, 1, 11, 0, 1, tzinfo=UTC)))
        self.assertTrue(w.contains(dt.datetime(2024, 1, 1, 11, 0, tzinfo=UTC)))
        self.assertTrue(w.contains(self.anchor))
        self.assertFalse(w.contains(dt.datetime(2024, 1, 1, 10, 59, 59, tzinfo=UTC)))
        self.assertFalse(w.contains(dt.datetime(2024, 1, 1, 12, 0, 1, tzinfo=UTC)))

    def test_unknown_filter_falls_back_to_one_hour(self):
        self.assertEqual(parse_time_filter("bogus"), ("1h", 60))
        self.assertEqual(parse_time_filter(None), ("1h", 60))
        self.assertEqual(parse_time_filter(""), ("1h", 60))
        self.assertEqual(resolve_window(self.anchor, "bogus").minutes, 60)

    def test_known_filters(self):
        self.assertEqual(parse_time_filter("5m"), ("5m", 5))
        self.assertEqual(parse_time_filter("1d"), ("1d", 1440))
        self.assertEqual(parse_time_filter("1w"), ("1w", 10080))
        self.assertEqual(parse_time_filter("30d"), ("30d", 43200))

    def test_resolution_is_repeatable(self):
        self.assertEqual(resolve_window(self.anchor, "6h"), resolve_window(self.anchor, "6h"))

    def test_naive_anchor_is_treated_as_utc(self):
        naive = dt.datetime(2024, 1, 1, 12, 0)
        self.assertEqual(resolve_window(naive, "1h"), resolve_window(self.anchor, "1h"))


class BucketingTests(unittest.TestCase):
    def test_bucket_size_scales_with_window(self):
        self.assertEqual(bucket_minutes_for(60), 1)
        self.assertEqual(bucket_minutes_for(1440), 12)
        self.assertEqual(bucket_minutes_for(10080), 96)
        self.assertEqual(bucket_minutes_for(43200), 432)

    def test_bucket_start_is_epoch_aligned(self):
        ts = dt.datetime(2024, 1, 1, 12, 7, 30, tzinfo=UTC)
        self.assertEqual(bucket_start(ts, 5), dt.datetime(2024, 1, 1, 12, 5, tzinfo=UTC))
        self.assertEqual(bucket_start(ts, 60), dt.datetime(2024, 1, 1, 12, 0, tzinfo=UTC))
        # already aligned
        aligned = dt.datetime(2024, 1, 1, 12, 10, tzinfo=UTC)
        self.assertEqual(bucket_start(aligned, 5), aligned)

    def test_only_populated_buckets_newest_first(self):
        rows = [
            (dt.datetime(2024, 1, 1, 12, 3, tzinfo=UTC), (5.0, 2.0)),
            (dt.datetime(2024, 1, 1, 12, 0, 50, tzinfo=UTC), (3.0, None)),
            (dt.datetime(2024, 1, 1, 12, 0, 10, tzinfo=UTC), (1.0, None)),
        ]
        out = bucket_rows(rows, ["a", "b"], 1)

        self.assertEqual(len(out), 2)
        self.assertEqual(out[0]["time"], dt.datetime(2024, 1, 1, 12, 3, tzinfo=UTC))
        self.assertEqual(out[0]["a"], 5.0)
        self.assertEqual(out[0]["b"], 2.0)
        self.assertEqual(out[0]["sample_count"], 1)

        self.assertEqual(out[1]["time"], dt.datetime(2024, 1, 1, 12, 0, tzinfo=UTC))
        self.assertEqual(out[1]["a"], 2.0)
        self.assertIsNone(out[1]["b"])
        self.assertEqual(out[1]["sample_count"], 2)

    def test_averages_are_rounded(self):
        rows = [
            (dt.datetime(2024, 1, 1, 0, 0, 1, tzinfo=UTC), (1.0,)),
            (dt.datetime(2024, 1, 1, 0, 0, 2, tzinfo=UTC), (1.0,)),
            (dt.datetime(2024, 1, 1, 0, 0, 3, tzinfo=UTC), (2.0,)),
        ]
        out = bucket_rows(rows, ["a"], 1)
        self.assertEqual(out[0]["a"], 1.33)

    def test_empty_input(self):
        self.assertEqual(bucket_rows([], ["a"], 5), [])
