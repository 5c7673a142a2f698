import os

import pytest

from env_validation import EnvironmentError, get_env_bool, get_env_float, get_env_int, validate_environment


def test_validate_environment_applies_db_path_default(monkeypatch):
    monkeypatch.delenv("DB_PATH", raising=False)

    validate_environment()

    assert os.environ["DB_PATH"] == "data.db"


@pytest.mark.parametrize(
    "name, value",
    [
        ("DB_MAX_CONNECTIONS", "many"),
        ("DB_TIMEOUT_SECONDS", "0"),
        ("REVIEW_BASE_INTERVAL_HOURS", "-4"),
        ("DB_MAX_CONNECTIONS", "0.5"),
        ("DB_MAX_CONNECTIONS", "0"),
        ("DASHBOARD_RECENT_LIMIT", "2.5"),
    ],
)
def test_validate_environment_rejects_bad_numbers(monkeypatch, name, value):
    monkeypatch.setenv("DB_PATH", "quiz.db")
    monkeypatch.setenv(name, value)

    with pytest.raises(EnvironmentError) as excinfo:
        validate_environment()

    assert name in str(excinfo.value)


def test_validate_environment_accepts_valid_numbers(monkeypatch):
    monkeypatch.setenv("DB_PATH", "quiz.db")
    monkeypatch.setenv("REVIEW_MIN_INTERVAL_HOURS", "0.5")
    monkeypatch.setenv("DASHBOARD_RECENT_LIMIT", "25")

    validate_environment()


def test_get_env_float_falls_back(monkeypatch):
    monkeypatch.setenv("REVIEW_BASE_INTERVAL_HOURS", "twelve")
    assert get_env_float("REVIEW_BASE_INTERVAL_HOURS", 24.0) == 24.0

    monkeypatch.setenv("REVIEW_BASE_INTERVAL_HOURS", "12")
    assert get_env_float("REVIEW_BASE_INTERVAL_HOURS", 24.0) == 12.0

    monkeypatch.delenv("REVIEW_BASE_INTERVAL_HOURS")
    assert get_env_float("REVIEW_BASE_INTERVAL_HOURS", 24.0) == 24.0


@pytest.mark.parametrize("raw, expected", [("1", True), ("Yes", True), ("off", False), ("0", False)])
def test_get_env_bool(monkeypatch, raw, expected):
    monkeypatch.setenv("REVIEW_ON_SUBMIT", raw)

    assert get_env_bool("REVIEW_ON_SUBMIT", default=not expected) is expected


@pytest.mark.parametrize("raw, expected", [("4", 4), ("0.5", 10), ("0", 10), ("-3", 10), ("lots", 10), ("", 10)])
def test_get_env_int_requires_whole_number_of_at_least_one(monkeypatch, raw, expected):
    monkeypatch.setenv("DB_MAX_CONNECTIONS", raw)

    assert get_env_int("DB_MAX_CONNECTIONS", 10) == expected
