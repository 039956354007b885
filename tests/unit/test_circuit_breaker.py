"""
Unit tests for the per-source circuit breaker
"""

from ingestion.circuit_breaker import BreakerState, CircuitBreaker


def make_breaker(clock, threshold=5, cooldown=60.0):
    return CircuitBreaker("perseverance", threshold=threshold, cooldown=cooldown, clock=clock)


class TestCircuitBreaker:

    def test_opens_after_threshold_consecutive_failures(self, fake_clock):
        breaker = make_breaker(fake_clock)

        for _ in range(4):
            breaker.record_failure()
            assert breaker.allow_request()

        breaker.record_failure()

        assert breaker.state == BreakerState.OPEN
        assert not breaker.allow_request()

    def test_success_resets_failure_count(self, fake_clock):
        breaker = make_breaker(fake_clock)

        for _ in range(4):
            breaker.record_failure()
        breaker.record_success()
        for _ in range(4):
            breaker.record_failure()

        assert breaker.state == BreakerState.CLOSED
        assert breaker.consecutive_failures == 4

    def test_stays_open_during_cooldown(self, fake_clock):
        breaker = make_breaker(fake_clock)
        for _ in range(5):
            breaker.record_failure()

        fake_clock.advance(59.9)

        assert not breaker.allow_request()
        assert breaker.seconds_until_probe() > 0

    def test_half_open_admits_exactly_one_probe(self, fake_clock):
        breaker = make_breaker(fake_clock)
        for _ in range(5):
            breaker.record_failure()

        fake_clock.advance(60)

        assert breaker.state == BreakerState.HALF_OPEN
        assert breaker.allow_request() is True
        assert breaker.allow_request() is False

    def test_probe_success_closes(self, fake_clock):
        breaker = make_breaker(fake_clock)
        for _ in range(5):
            breaker.record_failure()
        fake_clock.advance(60)
        assert breaker.allow_request()

        breaker.record_success()

        assert breaker.state == BreakerState.CLOSED
        assert breaker.allow_request()
        assert breaker.allow_request()

    def test_probe_failure_reopens_for_full_cooldown(self, fake_clock):
        breaker = make_breaker(fake_clock)
        for _ in range(5):
            breaker.record_failure()
        fake_clock.advance(60)
        assert breaker.allow_request()

        breaker.record_failure()

        assert breaker.state == BreakerState.OPEN
        assert not breaker.allow_request()
        fake_clock.advance(30)
        assert not breaker.allow_request()
        fake_clock.advance(30)
        assert breaker.allow_request()

    def test_instances_do_not_share_state(self, fake_clock):
        first = make_breaker(fake_clock)
        second = CircuitBreaker("curiosity", threshold=5, cooldown=60, clock=fake_clock)

        for _ in range(5):
            first.record_failure()

        assert first.state == BreakerState.OPEN
        assert second.state == BreakerState.CLOSED
        assert second.allow_request()
