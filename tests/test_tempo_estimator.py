import unittest

from onset_detector import DetectionEvent
from tempo_estimator import TempoEstimator, histogram_bpm, round_half_up


def kicks_at(*timestamps):
    return [DetectionEvent(timestamp=float(t), energy=0.8, spectral_flux=0.5) for t in timestamps]


class TestHistogram(unittest.TestCase):
    def test_regular_intervals(self):
        bpm, members = histogram_bpm([500.0] * 4)
        self.assertAlmostEqual(bpm, 120.0)
        self.assertEqual(members, 4)

    def test_most_populated_bin_wins(self):
        bpm, members = histogram_bpm([500.0, 500.0, 400.0, 400.0, 400.0])
        self.assertAlmostEqual(bpm, 150.0)
        self.assertEqual(members, 3)

    def test_tie_goes_to_lowest_bpm_bin(self):
        bpm, _ = histogram_bpm([500.0, 400.0], min_members=1)
        self.assertAlmostEqual(bpm, 120.0)
        self.assertEqual(histogram_bpm([400.0, 400.0, 500.0, 500.0]), (120.0, 2))
        self.assertEqual(histogram_bpm([400.0, 500.0, 400.0, 500.0]), (120.0, 2))

    def test_needs_two_members(self):
        self.assertEqual(histogram_bpm([500.0, 400.0]), (0.0, 1))
        self.assertEqual(histogram_bpm([]), (0.0, 0))

    def test_round_half_up(self):
        self.assertEqual(round_half_up(2.5), 3.0)
        self.assertEqual(round_half_up(24.5), 25.0)
        self.assertEqual(round_half_up(2.4), 2.0)


class TestTempoEstimator(unittest.TestCase):
    def test_first_estimate_adopted_outright(self):
        est = TempoEstimator()
        kicks = kicks_at(*range(0, 5000, 500))
        self.assertTrue(est.maybe_update(kicks, 4500.0))
        self.assertEqual(est.bpm, 120.0)

    def test_update_is_rate_limited(self):
        est = TempoEstimator()
        kicks = kicks_at(*range(0, 5000, 500))
        est.maybe_update(kicks, 4500.0)
        self.assertFalse(est.due(5000.0))
        self.assertFalse(est.maybe_update(kicks_at(0, 400, 800, 1200), 5000.0))
        self.assertEqual(est.bpm, 120.0)
        self.assertFalse(est.due(5500.0))
        self.assertTrue(est.due(5501.0))

    def test_smoothing_blends_with_previous(self):
        est = TempoEstimator()
        est.state.bpm = 100.0
        est.update(kicks_at(0, 500, 1000, 1500), 1500.0)
        self.assertEqual(est.bpm, 106.0)

    def test_implausible_intervals_ignored(self):
        est = TempoEstimator()
        self.assertFalse(est.update(kicks_at(0, 100, 200, 300), 300.0))
        self.assertEqual(est.valid_intervals(kicks_at(0, 100, 2500), 2500.0), [])
        self.assertEqual(est.bpm, 0.0)

    def test_stale_kicks_keep_previous_bpm(self):
        est = TempoEstimator()
        kicks = kicks_at(*range(0, 5000, 500))
        est.maybe_update(kicks, 4500.0)
        est.maybe_update(kicks, 20000.0)
        self.assertEqual(est.bpm, 120.0)
        self.assertEqual(est.last_candidate, 0.0)

    def test_single_interval_is_not_enough(self):
        est = TempoEstimator()
        est.update(kicks_at(0, 500), 500.0)
        self.assertEqual(est.bpm, 0.0)
        self.assertEqual(est.last_bin_members, 1)

    def test_reset(self):
        est = TempoEstimator()
        est.maybe_update(kicks_at(*range(0, 5000, 500)), 4500.0)
        est.reset()
        self.assertEqual(est.bpm, 0.0)
        self.assertTrue(est.due(4600.0))


if __name__ == "__main__":
    unittest.main()
