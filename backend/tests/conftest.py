from __future__ import annotations

import pytest

from shared.config import Settings

from tests.fakes import LEAGUE_A, LEAGUE_B, FakeClock, RecordingSleep


@pytest.fixture
def settings() -> Settings:
    return Settings(
        monitored_leagues=[LEAGUE_A, LEAGUE_B],
        espn_leagues=[],
        prediction_item_delay_s=0.0,
        correlator_league_delay_s=0.0,
        metrics_enabled=False,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()
