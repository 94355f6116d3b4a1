"""Tests for the API server runner."""

from unittest.mock import patch

from bookrail import run
from bookrail.core.config import settings


@patch("bookrail.run.uvicorn.run")
def test_main_serves_app_with_configured_bind(mock_run, monkeypatch):
    monkeypatch.setattr(settings, "api_port", 9123)
    monkeypatch.setattr(settings, "environment", "development")

    run.main()

    mock_run.assert_called_once()
    args, kwargs = mock_run.call_args
    assert args == ("bookrail.main:app",)
    assert kwargs["port"] == 9123
    assert kwargs["host"] == settings.api_host
    assert kwargs["reload"] is True


@patch("bookrail.run.uvicorn.run")
def test_no_reload_in_production(mock_run, monkeypatch):
    monkeypatch.setattr(settings, "environment", "production")

    run.main()

    assert mock_run.call_args.kwargs["reload"] is False
