from typing import Any
from dataclasses import dataclass, field
from registrykit.utils.errors import DecodeError


def _get(data: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default

    # bool is an int subclass, but never a valid size or version
    if not isinstance(value, kind) or isinstance(value, bool):
        raise DecodeError(
            f"{key}: expected {kind.__name__}, got {type(value).__name__}"
        )

    return value


def _object(data: Any, name: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise DecodeError(f"{name}: expected an object")

    return data


@dataclass
class Descriptor:
    media_type: str = ""
    size: int = 0
    digest: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "Descriptor":
        data = _object(data, "descriptor")
        return cls(
            media_type=_get(data, "mediaType", str, ""),
            size=_get(data, "size", int, 0),
            digest=_get(data, "digest", str, ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "mediaType": self.media_type,
            "size": self.size,
            "digest": self.digest,
        }


@dataclass
class Manifest:
    schema_version: int = 0
    media_type: str = ""
    config: Descriptor = field(default_factory=Descriptor)
    layers: list[Descriptor] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "Manifest":
        data = _object(data, "manifest")
        config = data.get("config")
        return cls(
            schema_version=_get(data, "schemaVersion", int, 0),
            media_type=_get(data, "mediaType", str, ""),
            config=(
                Descriptor.from_dict(config)
                if config is not None
                else Descriptor()
            ),
            layers=[
                Descriptor.from_dict(layer)
                for layer in _get(data, "layers", list, [])
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "mediaType": self.media_type,
            "config": self.config.to_dict(),
            "layers": [layer.to_dict() for layer in self.layers],
        }

    @property
    def size(self) -> int:
        return self.config.size + sum(layer.size for layer in self.layers)
