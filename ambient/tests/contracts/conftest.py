"""
Shared pytest fixtures for ambient contract tests.

Contract tests use test doubles (fakes, stubs) to avoid real dependencies.
No audio device, real timers or environment variables are used; files only
live under pytest's tmp_path.
"""

import random

import pytest

from ambient.config import ProbabilityMode, ScheduleConfig, SettingsHolder
from ambient.library import AssetGroup
from ambient.scheduler import Scheduler
from ambient.selector import Selector
from ambient.state import ConfigStore
from ambient.tests.contracts.test_doubles import (
    FakePlaybackPort,
    ManualTimerService,
    ScriptedRandom,
    StatusRecorder,
)


@pytest.fixture
def linear_config():
    """Linear escalation: 10% start, +15 per miss, 10s interval."""
    return ScheduleConfig(
        interval_seconds=10.0,
        initial_probability=10.0,
        mode=ProbabilityMode.LINEAR,
        linear_step=15.0,
        exponential_multiplier=2.0,
        anti_repeat=True,
        volume=0.5,
    )


@pytest.fixture
def exponential_config(linear_config):
    """Exponential escalation: 10% start, x2 per miss."""
    return linear_config.with_changes(mode=ProbabilityMode.EXPONENTIAL)


@pytest.fixture
def settings(linear_config):
    return SettingsHolder(linear_config)


@pytest.fixture
def group_ab():
    return AssetGroup("Duelists", ("phoenix.mp3", "yoru.mp3"))


@pytest.fixture
def manual_timers():
    return ManualTimerService()


@pytest.fixture
def fake_playback():
    return FakePlaybackPort()


@pytest.fixture
def scripted_rng():
    return ScriptedRandom()


@pytest.fixture
def status_recorder():
    return StatusRecorder()


@pytest.fixture
def scheduler(fake_playback, manual_timers, scripted_rng, status_recorder):
    """Scheduler on fakes: scripted rolls, seeded selection, manual clock."""
    return Scheduler(
        fake_playback,
        timers=manual_timers,
        rng=scripted_rng,
        selector=Selector(random.Random(1234)),
        status_listener=status_recorder,
        settle_delay=0.5,
        jitter_max=0.5,
    )


@pytest.fixture
def config_store(tmp_path):
    return ConfigStore(str(tmp_path / "config" / "sound_player_config.json"))
