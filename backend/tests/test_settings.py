"""Settings parsing and cross-field validation"""
from signflow.config.settings import Settings


def test_defaults_are_consistent():
    assert Settings().validate_configuration() == []


def test_warning_days_are_parsed_largest_first():
    settings = Settings(expiration_warning_days="1, 7,3,7,x")

    assert settings.expiration_warning_days_list == [7, 3, 1]


def test_all_problems_are_reported():
    settings = Settings(
        min_expiration_days=10,
        max_expiration_days=5,
        default_expiration_days=30,
        expiration_warning_days="7,-1",
        max_page_size=10,
        default_page_size=50,
    )

    errors = settings.validate_configuration()

    assert "max_expiration_days must be greater than min_expiration_days" in errors
    assert "default_expiration_days must be between min and max expiration days" in errors
    assert "expiration_warning_days must be a comma-separated list of positive integers" in errors
    assert "default_page_size must be between 1 and max_page_size" in errors


def test_environment_prefix(monkeypatch):
    monkeypatch.setenv("SIGNFLOW_MAX_SIGNERS_PER_REQUEST", "12")

    assert Settings().max_signers_per_request == 12
