import os
from typing import Any

import yaml

from registrykit.utils.oci_api import Options

TRUE_VALUES = {"1", "true", "yes", "on"}


class Config:
    config: dict[str, Any]
    config_paths = [
        "config/registrykit.yaml",
        "config/registrykit.private.yaml",
    ]
    default_values: dict[str, str | int | bool] = {
        "registry_user": "",
        "registry_password": "",
        "insecure": False,
        "basic_auth": False,
        "timeout": 30,
    }

    def __init__(self) -> None:
        self.config = {}
        for config_path in self.config_paths:
            self._load_config(config_path)

    def _load_config(self, file_path: str) -> None:
        if not os.path.exists(file_path):
            return

        with open(file_path, "r") as file:
            self.config.update(yaml.safe_load(file) or {})

    def __getitem__(self, key: str) -> Any:
        return (
            os.getenv(key.upper())
            or self.config.get(key.lower())
            or self.default_values.get(key)
        )

    def flag(self, key: str) -> bool:
        value = self[key]
        if isinstance(value, str):
            return value.strip().lower() in TRUE_VALUES

        return bool(value)

    def options(self) -> Options:
        return Options(
            insecure=self.flag("insecure"),
            timeout=float(self["timeout"]),
            basic_auth=self.flag("basic_auth"),
        )
