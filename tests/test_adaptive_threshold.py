import unittest

from adaptive_threshold import AdaptiveThreshold


class TestAdaptiveThreshold(unittest.TestCase):
    def test_empty_history_returns_floor(self):
        self.assertEqual(AdaptiveThreshold().threshold(), 0.1)

    def test_silence_falls_back_to_floor(self):
        threshold = AdaptiveThreshold()
        for _ in range(20):
            threshold.update(0.0)
        self.assertEqual(threshold.threshold(), 0.1)

    def test_mean_plus_scaled_std(self):
        threshold = AdaptiveThreshold(window_size=20, multiplier=1.2)
        for i in range(20):
            threshold.update(float(i % 2))
        # mean 0.5, population std 0.5
        self.assertAlmostEqual(threshold.threshold(), 0.5 + 1.2 * 0.5)

    def test_window_keeps_latest_values(self):
        threshold = AdaptiveThreshold(window_size=5)
        for _ in range(10):
            threshold.update(1.0)
        for _ in range(5):
            threshold.update(0.5)
        self.assertEqual(len(threshold), 5)
        self.assertAlmostEqual(threshold.threshold(), 0.5)

    def test_non_finite_samples_ignored(self):
        threshold = AdaptiveThreshold()
        threshold.update(float('nan'))
        threshold.update(float('inf'))
        self.assertEqual(len(threshold), 0)
        self.assertEqual(threshold.threshold(), 0.1)

    def test_resize_and_reset(self):
        threshold = AdaptiveThreshold(window_size=20)
        for _ in range(20):
            threshold.update(0.3)
        threshold.resize(5)
        self.assertEqual(threshold.window_size, 5)
        self.assertEqual(len(threshold), 5)
        threshold.reset()
        self.assertEqual(len(threshold), 0)


if __name__ == "__main__":
    unittest.main()
