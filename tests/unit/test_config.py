from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest

from compliance_engine.config import get_settings
from compliance_engine.utils.env import load_env_file, parse_env_lines


@pytest.fixture
def fresh_settings() -> Iterator[None]:
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch, fresh_settings: None) -> None:
  monkeypatch.setenv("COMPLIANCE_ALLOWED_ORIGINS", "https://app.example.com, https://admin.example.com")
  monkeypatch.setenv("COMPLIANCE_BREAKER_FAILURE_THRESHOLD", "3")
  monkeypatch.setenv("COMPLIANCE_QUALITY_PROVIDER", "OpenAI")
  monkeypatch.setenv("COMPLIANCE_DUMMY_RESPONSES", "yes")

  settings = get_settings()

  assert settings.allowed_origins == ("https://app.example.com", "https://admin.example.com")
  assert settings.breaker_failure_threshold == 3
  assert settings.quality_provider == "openai"
  assert settings.dummy_responses is True


@pytest.mark.parametrize(
  ("name", "value"),
  [
    ("COMPLIANCE_ALLOWED_ORIGINS", "*"),
    ("COMPLIANCE_BREAKER_FAILURE_THRESHOLD", "0"),
    ("COMPLIANCE_GUARDRAIL_BLOCK_THRESHOLD", "11"),
    ("COMPLIANCE_QUALITY_PROVIDER", "mistral"),
  ],
)
def test_settings_reject_invalid_values(monkeypatch: pytest.MonkeyPatch, fresh_settings: None, name: str, value: str) -> None:
  monkeypatch.setenv(name, value)
  with pytest.raises(ValueError, match=name):
    get_settings()


def test_parse_env_lines() -> None:
  parsed = parse_env_lines(["# local overrides", "", "export COMPLIANCE_DEBUG=1", "OPENAI_API_KEY='sk-test'", "COMPLIANCE_ENV=staging # shared box", "not a pair"])
  assert parsed == {"COMPLIANCE_DEBUG": "1", "OPENAI_API_KEY": "sk-test", "COMPLIANCE_ENV": "staging"}


def test_load_env_file_keeps_existing_values(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text("COMPLIANCE_TEST_KEEP=file\nCOMPLIANCE_TEST_NEW=file\n", encoding="utf-8")
  monkeypatch.setenv("COMPLIANCE_TEST_KEEP", "process")
  monkeypatch.delenv("COMPLIANCE_TEST_NEW", raising=False)

  load_env_file(env_file)

  assert os.environ["COMPLIANCE_TEST_KEEP"] == "process"
  assert os.environ["COMPLIANCE_TEST_NEW"] == "file"
  monkeypatch.delenv("COMPLIANCE_TEST_NEW")
