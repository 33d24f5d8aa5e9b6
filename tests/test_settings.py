import pytest

from pomotrack.core.session import SessionType
from pomotrack.core.settings import TimerSettings
from pomotrack.errors import SettingsError


def test_defaults_match_classic_pomodoro() -> None:
    settings = TimerSettings()

    assert settings.duration_seconds(SessionType.WORK) == 1500
    assert settings.duration_seconds(SessionType.SHORT_BREAK) == 300
    assert settings.duration_seconds(SessionType.LONG_BREAK) == 900
    assert settings.break_interval == 4
    assert settings.auto_start is False
    assert settings.sound_enabled is True


def test_updated_returns_new_copy() -> None:
    settings = TimerSettings()

    changed = settings.updated(work_duration_minutes=50, auto_start=True)

    assert changed.work_duration_minutes == 50
    assert changed.auto_start is True
    assert settings.work_duration_minutes == 25


@pytest.mark.parametrize(
    "changes",
    [
        {"work_duration_minutes": 0},
        {"short_break_duration_minutes": -5},
        {"long_break_duration_minutes": 2.5},
        {"break_interval": 0},
        {"break_interval": True},
        {"auto_start": "yes"},
        {"sound_enabled": 1},
        {"volume": 3},
    ],
)
def test_invalid_updates_rejected(changes) -> None:
    with pytest.raises(SettingsError):
        TimerSettings().updated(**changes)


def test_settings_error_is_value_error() -> None:
    with pytest.raises(ValueError):
        TimerSettings(break_interval=-1)


def test_from_dict_accepts_camel_case_payload() -> None:
    settings = TimerSettings.from_dict(
        {
            "workDurationMinutes": 30,
            "shortBreakDurationMinutes": 6,
            "longBreakDurationMinutes": 20,
            "breakInterval": 3,
            "autoStart": True,
            "soundEnabled": False,
        }
    )

    assert settings == TimerSettings(30, 6, 20, 3, True, False)


def test_dict_round_trip_uses_snake_case() -> None:
    settings = TimerSettings(work_duration_minutes=45)

    assert TimerSettings.from_dict(settings.to_dict()) == settings
    assert "work_duration_minutes" in settings.to_dict()
