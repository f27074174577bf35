from __future__ import annotations

import os
from pathlib import Path

import pytest

from gatedcounter import env as env_mod


@pytest.fixture(autouse=True)
def _fresh_loader():
    env_mod._reset_for_tests()
    yield
    env_mod._reset_for_tests()


def test_dotenv_loads_once_without_overriding(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    p = tmp_path / ".env"
    p.write_text("GATEDCOUNTER_DOTENV_PROBE=from-file\nGATEDCOUNTER_DOTENV_KEEP=from-file\n", encoding="utf-8")
    monkeypatch.setenv("GATEDCOUNTER_DOTENV_KEEP", "from-env")
    # Registered so monkeypatch removes the loaded value afterwards.
    monkeypatch.setenv("GATEDCOUNTER_DOTENV_PROBE", "")
    monkeypatch.delenv("GATEDCOUNTER_DOTENV_PROBE")

    assert env_mod.load_dotenv_if_present(str(p)) is True
    assert os.environ["GATEDCOUNTER_DOTENV_PROBE"] == "from-file"
    assert os.environ["GATEDCOUNTER_DOTENV_KEEP"] == "from-env"

    # Second call is a no-op.
    assert env_mod.load_dotenv_if_present(str(p)) is False


def test_missing_dotenv_is_not_an_error(tmp_path: Path) -> None:
    assert env_mod.load_dotenv_if_present(str(tmp_path / "nope.env")) is False
