# conftest.py
import pytest

from settings import AgentProfile, BridgeTimings


@pytest.fixture
def timings():
    return BridgeTimings(
        poll_interval_ms=100,
        delta_delay_ms=50,
        discovery_attempts=50,
        discovery_interval_ms=100,
        growth_threshold_chars=2,
        start_timeout_ms=5000,
        affordance_min_elapsed_ms=200,
        finished_grace_ms=3000,
        settle_checks=3,
        settle_delay_ms=100,
        round_timeout_ms=60000,
        pre_submit_delay_ms=0,
    )


@pytest.fixture
def profile_a():
    return AgentProfile(key="alpha", name="A", url="https://alpha.test/chat", input_selectors=["#composer"])


@pytest.fixture
def profile_b():
    return AgentProfile(key="beta", name="B", url="https://beta.test/chat", input_selectors=["#composer"])
