import pytest

pytest.importorskip("dotenv")

from kidpoints.models import HistoryRemovalPolicy
import kidpoints.webapp.config as config


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, HistoryRemovalPolicy.RETAIN),
        ("", HistoryRemovalPolicy.RETAIN),
        ("retain", HistoryRemovalPolicy.RETAIN),
        (" Cascade ", HistoryRemovalPolicy.CASCADE),
    ],
)
def test_removal_policy_from_environment(monkeypatch, raw, expected) -> None:
    if raw is None:
        monkeypatch.delenv("KIDPOINTS_HISTORY_ON_REMOVE", raising=False)
    else:
        monkeypatch.setenv("KIDPOINTS_HISTORY_ON_REMOVE", raw)

    assert config._env_removal_policy("KIDPOINTS_HISTORY_ON_REMOVE") is expected


def test_invalid_removal_policy_names_the_variable(monkeypatch) -> None:
    monkeypatch.setenv("KIDPOINTS_HISTORY_ON_REMOVE", "forget")

    with pytest.raises(RuntimeError, match="KIDPOINTS_HISTORY_ON_REMOVE"):
        config._env_removal_policy("KIDPOINTS_HISTORY_ON_REMOVE")


@pytest.mark.parametrize("raw", ["abc", "0", "-3"])
def test_invalid_integer_settings_name_the_variable(monkeypatch, raw) -> None:
    monkeypatch.setenv("KIDPOINTS_HISTORY_LIMIT", raw)

    with pytest.raises(RuntimeError, match="KIDPOINTS_HISTORY_LIMIT"):
        config._env_int("KIDPOINTS_HISTORY_LIMIT", 50)
