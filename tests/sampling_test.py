import pytest

from shorts_worker.pipeline.sampling import sample_timestamps


class TestSampleTimestamps:
    def test_count_is_segments_times_frames(self):
        assert len(sample_timestamps(60, 30, 10)) == 300
        assert len(sample_timestamps(7, 3, 2)) == 6

    def test_non_decreasing_and_within_duration(self):
        for duration in (1, 13, 59.5, 120):
            timestamps = sample_timestamps(duration)
            assert timestamps == sorted(timestamps)
            assert timestamps[0] == 0.0
            assert all(0 <= t < duration for t in timestamps)

    def test_exact_formula(self):
        """(segment + i / frames) * (duration / segments)"""
        timestamps = sample_timestamps(60, 30, 10)
        assert timestamps[0] == pytest.approx(0.0)
        assert timestamps[1] == pytest.approx(0.2)
        assert timestamps[10] == pytest.approx(2.0)
        assert timestamps[-1] == pytest.approx(59.8)

    def test_single_segment_single_frame(self):
        assert sample_timestamps(10, 1, 1) == [0.0]

    @pytest.mark.parametrize("duration", [0, -5, None])
    def test_rejects_non_positive_duration(self, duration):
        with pytest.raises(ValueError):
            sample_timestamps(duration)

    @pytest.mark.parametrize("segments,frames", [(0, 10), (30, 0)])
    def test_rejects_empty_sampling(self, segments, frames):
        with pytest.raises(ValueError):
            sample_timestamps(60, segments, frames)
