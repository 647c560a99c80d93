"""Unit tests for submissions: seeding, guards and catch-up sampling."""

import pytest

from twap_oracle.oracle import (
    ClockRegression,
    ConfigurationError,
    ExcessiveDelta,
    InvalidPrice,
    OracleConfig,
    PriceAccepted,
    PriceSpike,
    Sample,
    SampleWritten,
    TwapOracle,
)
from twap_oracle.wad import to_wad


def seed_with_samples(oracle, start, price, count, interval=60):
    """Seed at `start`, then submit `price` once per interval `count` times."""
    oracle.submit(price, start)
    for i in range(1, count + 1):
        oracle.submit(price, start + i * interval)


class TestConfiguration:
    def test_zero_interval_rejected(self):
        with pytest.raises(ConfigurationError):
            OracleConfig(sample_interval=0, capacity=30)

    def test_zero_capacity_rejected(self):
        with pytest.raises(ConfigurationError):
            OracleConfig(sample_interval=60, capacity=0)

    def test_negative_guard_rejected(self):
        with pytest.raises(ConfigurationError):
            OracleConfig(sample_interval=60, capacity=30, max_delta_seconds=-1)

    def test_guards_default_to_disabled(self):
        config = OracleConfig(sample_interval=60, capacity=30)

        assert config.max_delta_seconds == 0
        assert config.max_relative_price_change == 0


class TestSeeding:
    def test_first_submission_seeds_without_sample(self, oracle):
        written = oracle.submit(to_wad("2.0"), 1_000_000)

        assert written == 0
        assert oracle.last_update_timestamp == 1_000_000
        assert oracle.price_cumulative_last == 0
        assert oracle.filled_count() == 0

    def test_clock_used_when_now_omitted(self, config):
        oracle = TwapOracle(config, clock=lambda: 42_000)

        oracle.submit(to_wad("1.0"))

        assert oracle.last_update_timestamp == 42_000

    def test_negative_seed_price_rejected(self, oracle):
        with pytest.raises(InvalidPrice):
            oracle.submit(-1, 1_000_000)

        assert oracle.last_update_timestamp is None


class TestAccumulator:
    def test_integrates_price_over_elapsed_time(self, oracle):
        oracle.submit(to_wad("2.0"), 1_000_000)
        oracle.submit(to_wad("2.0"), 1_000_010)

        # 2.0 x 10s
        assert oracle.price_cumulative_last == to_wad("20.0")
        assert oracle.filled_count() == 0

    def test_same_clock_reading_is_noop(self, oracle):
        oracle.submit(to_wad("1.0"), 1_000_000)
        oracle.submit(to_wad("1.0"), 1_000_060)
        before = oracle.snapshot()

        written = oracle.submit(to_wad("1.5"), 1_000_060)

        assert written == 0
        assert oracle.snapshot() == before

    def test_cumulative_never_decreases(self, oracle):
        path = ["1.0", "1.1", "0.9", "0.95", "1.05", "1.0"]
        oracle.submit(to_wad(path[0]), 1_000)
        seen = [oracle.price_cumulative_last]
        for i, price in enumerate(path[1:], start=1):
            oracle.submit(to_wad(price), 1_000 + i * 45)
            seen.append(oracle.price_cumulative_last)

        assert seen == sorted(seen)

    def test_zero_price_accepted(self, unguarded_oracle):
        unguarded_oracle.submit(to_wad("1.0"), 1_000)
        unguarded_oracle.submit(0, 1_060)

        assert unguarded_oracle.price_cumulative_last == 0
        assert unguarded_oracle.filled_count() == 1


class TestTimeGuard:
    def test_delta_at_limit_accepted(self, oracle):
        oracle.submit(to_wad("1.0"), 10_000)

        oracle.submit(to_wad("1.0"), 10_000 + 3600)

        assert oracle.last_update_timestamp == 13_600

    def test_delta_over_limit_rejected(self, oracle):
        oracle.submit(to_wad("1.0"), 10_000)
        before = oracle.snapshot()

        with pytest.raises(ExcessiveDelta) as exc_info:
            oracle.submit(to_wad("1.0"), 10_000 + 3601)

        assert exc_info.value.delta == 3601
        assert exc_info.value.max_delta == 3600
        assert exc_info.value.code == "EXCESSIVE_DELTA"
        assert oracle.snapshot() == before

    def test_disabled_time_guard(self, unguarded_oracle):
        unguarded_oracle.submit(to_wad("1.0"), 10_000)

        unguarded_oracle.submit(to_wad("1.0"), 10_000 + 86_400)

        assert unguarded_oracle.last_update_timestamp == 96_400

    def test_clock_regression_rejected(self, oracle):
        oracle.submit(to_wad("1.0"), 10_000)
        oracle.submit(to_wad("1.0"), 10_060)
        before = oracle.snapshot()

        with pytest.raises(ClockRegression):
            oracle.submit(to_wad("1.0"), 10_030)

        assert oracle.snapshot() == before

    def test_negative_price_rejected(self, oracle):
        oracle.submit(to_wad("1.0"), 10_000)

        with pytest.raises(InvalidPrice):
            oracle.submit(-5, 10_060)


class TestPriceGuard:
    @pytest.fixture
    def primed(self, oracle):
        # two samples implying a price of 1.0
        seed_with_samples(oracle, 5_000_000, to_wad("1.0"), 2)
        return oracle

    def test_spike_rejected(self, primed):
        before = primed.snapshot()

        with pytest.raises(PriceSpike) as exc_info:
            primed.submit(to_wad("5.0"), 5_000_130)

        assert exc_info.value.old_price == to_wad("1.0")
        assert exc_info.value.new_price == to_wad("5.0")
        assert exc_info.value.max_ratio == to_wad("2.0")
        assert primed.snapshot() == before

    def test_price_at_ratio_accepted(self, primed):
        primed.submit(to_wad("2.0"), 5_000_130)

        assert primed.last_update_timestamp == 5_000_130

    def test_price_one_wei_over_ratio_rejected(self, primed):
        with pytest.raises(PriceSpike):
            primed.submit(to_wad("2.0") + 1, 5_000_130)

    def test_guard_needs_two_samples(self, oracle):
        oracle.submit(to_wad("1.0"), 5_000_000)
        oracle.submit(to_wad("1.0"), 5_000_060)

        oracle.submit(to_wad("50.0"), 5_000_070)

        assert oracle.last_update_timestamp == 5_000_070

    def test_reference_is_implied_from_ring_not_last_submission(self, primed):
        # 1.9 is accepted but writes no sample, so the reference stays at 1.0
        primed.submit(to_wad("1.9"), 5_000_130)

        with pytest.raises(PriceSpike):
            primed.submit(to_wad("3.0"), 5_000_140)

    def test_same_batch_reference_skips_guard(self, oracle):
        oracle.submit(to_wad("1.0"), 5_000_000)
        # a late update writes two samples sharing one cumulative value
        oracle.submit(to_wad("1.0"), 5_000_150)

        oracle.submit(to_wad("100.0"), 5_000_160)

        assert oracle.last_update_timestamp == 5_000_160

    def test_price_drops_are_not_guarded(self, primed):
        primed.submit(to_wad("0.01"), 5_000_130)

        assert primed.last_update_timestamp == 5_000_130


class TestCatchUp:
    def test_one_sample_per_interval(self, oracle):
        oracle.submit(to_wad("3.0"), 2_000_000)

        written = oracle.submit(to_wad("3.0"), 2_000_060)

        assert written == 1
        assert oracle.samples()[0].timestamp == 2_000_060
        assert oracle.samples()[0].cumulative == to_wad("180.0")

    def test_partial_interval_writes_nothing(self, oracle):
        oracle.submit(to_wad("1.0"), 10_000)

        assert oracle.submit(to_wad("1.0"), 10_059) == 0
        assert oracle.filled_count() == 0

    def test_batch_shares_current_cumulative(self, oracle):
        oracle.submit(to_wad("1.0"), 10_000)

        written = oracle.submit(to_wad("1.0"), 10_150)

        samples = oracle.samples()
        assert written == 2
        assert [s.timestamp for s in samples[:2]] == [10_060, 10_120]
        assert samples[0].cumulative == samples[1].cumulative == to_wad("150.0")

    def test_catch_up_measured_from_last_sample(self, oracle):
        oracle.submit(to_wad("1.0"), 10_000)
        oracle.submit(to_wad("1.0"), 10_150)

        written = oracle.submit(to_wad("1.0"), 10_185)

        assert written == 1
        assert oracle.samples()[2] == Sample(to_wad("185.0"), 10_180)

    def test_timestamps_strictly_increase(self, oracle):
        oracle.submit(to_wad("1.0"), 10_000)
        for now in (10_070, 10_100, 10_330, 10_400, 10_405, 10_999):
            oracle.submit(to_wad("1.0"), now)

        written = [s.timestamp for s in oracle.samples() if s.is_written]
        assert written == sorted(written)
        assert len(set(written)) == len(written)

    def test_overflowing_batch_keeps_last_capacity_entries(self, unguarded_oracle):
        unguarded_oracle.submit(to_wad("1.0"), 1_000)

        written = unguarded_oracle.submit(to_wad("1.0"), 1_600)

        # ten intervals elapsed, the ring holds three; write i lands in slot i % 3
        assert written == 3
        assert unguarded_oracle.cursor == 10 % 3
        assert [s.timestamp for s in unguarded_oracle.samples()] == [1_600, 1_480, 1_540]
        assert unguarded_oracle.filled_count() == 3

    def test_wraparound_drops_oldest(self, unguarded_oracle):
        seed_with_samples(unguarded_oracle, 1_000, to_wad("1.0"), 4)

        timestamps = {s.timestamp for s in unguarded_oracle.samples()}
        assert 1_060 not in timestamps
        assert timestamps == {1_120, 1_180, 1_240}
        assert unguarded_oracle.filled_count() == 3
        assert unguarded_oracle.cursor == 1


class TestInterpolatedCatchUp:
    @pytest.fixture
    def oracle(self):
        return TwapOracle(OracleConfig(sample_interval=60, capacity=30, interpolate_catch_up=True))

    def test_batch_slots_follow_the_integral(self, oracle):
        oracle.submit(to_wad("1.0"), 1_000)
        oracle.submit(to_wad("2.0"), 1_150)

        samples = oracle.samples()
        assert samples[0].cumulative == to_wad("120.0")
        assert samples[1].cumulative == to_wad("240.0")
        assert oracle.price_cumulative_last == to_wad("300.0")

    def test_twap_across_batch_is_the_submitted_price(self, oracle):
        oracle.submit(to_wad("1.0"), 1_000)
        oracle.submit(to_wad("2.0"), 1_150)

        assert oracle.get_twap(60) == to_wad("2.0")

    def test_slot_lags_accumulator_within_interval(self, oracle):
        oracle.submit(to_wad("1.0"), 1_000)
        oracle.submit(to_wad("2.0"), 1_150)
        oracle.submit(to_wad("1.0"), 1_200)

        # 300 at t=1150, then 1.0 x 30s up to the 1180 slot
        assert oracle.samples()[2].cumulative == to_wad("330.0")
        assert oracle.samples()[2].timestamp == 1_180


class TestEvents:
    def test_listener_receives_accepted_and_samples(self, oracle):
        events = []
        oracle.add_listener(events.append)

        oracle.submit(to_wad("1.0"), 10_000)
        oracle.submit(to_wad("1.0"), 10_150)

        assert [type(e) for e in events] == [PriceAccepted, SampleWritten, SampleWritten]
        assert events[1].timestamp == 10_060
        assert events[2].slot == 1

    def test_rejection_emits_nothing(self, oracle):
        events = []
        oracle.submit(to_wad("1.0"), 10_000)
        oracle.add_listener(events.append)

        with pytest.raises(ExcessiveDelta):
            oracle.submit(to_wad("1.0"), 20_000)

        assert events == []


class TestIndependence:
    def test_instances_share_no_state(self, config):
        first = TwapOracle(config)
        second = TwapOracle(config)

        first.submit(to_wad("1.0"), 1_000)
        first.submit(to_wad("1.0"), 1_060)

        assert second.filled_count() == 0
        assert second.last_update_timestamp is None
