import pytest
from pathlib import Path
from registrykit.config import Config
from registrykit.utils.oci_api import Options


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for key in (
        "REGISTRY_USER",
        "REGISTRY_PASSWORD",
        "INSECURE",
        "BASIC_AUTH",
        "TIMEOUT",
    ):
        monkeypatch.delenv(key, raising=False)


def test_config_default(monkeypatch: pytest.MonkeyPatch) -> None:
    config = Config()
    assert config["registry_user"] == ""
    assert config["timeout"] == 30
    assert config.options() == Options(
        insecure=False, timeout=30.0, basic_auth=False
    )
    monkeypatch.setenv("REGISTRY_USER", "robot")
    assert config["registry_user"] == "robot"


def test_config_files(tmp_path: Path) -> None:
    (tmp_path / "config").mkdir()
    (tmp_path / "config" / "registrykit.yaml").write_text(
        "registry_user: robot\ntimeout: 10\n"
    )
    (tmp_path / "config" / "registrykit.private.yaml").write_text(
        "registry_password: hunter2\ntimeout: 5\nbasic_auth: true\n"
    )
    config = Config()
    assert config["registry_user"] == "robot"
    assert config["registry_password"] == "hunter2"
    assert config.options() == Options(
        insecure=False, timeout=5.0, basic_auth=True
    )


@pytest.mark.parametrize(
    "value,expected",
    [("1", True), ("true", True), ("Yes", True), ("0", False), ("off", False)],
)
def test_config_flag_from_env(
    monkeypatch: pytest.MonkeyPatch, value: str, expected: bool
) -> None:
    monkeypatch.setenv("INSECURE", value)
    assert Config().flag("insecure") is expected
