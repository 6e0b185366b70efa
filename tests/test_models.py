import pytest
from typing import Any
from registrykit.utils.errors import DecodeError
from registrykit.utils.models import Descriptor, Manifest


def make_manifest() -> Manifest:
    return Manifest(
        schema_version=2,
        media_type="application/vnd.docker.distribution.manifest.v2+json",
        config=Descriptor(
            "application/vnd.docker.container.image.v1+json", 1469, "sha256:aaaa"
        ),
        layers=[
            Descriptor(
                "application/vnd.docker.image.rootfs.diff.tar.gzip",
                2811478,
                "sha256:bbbb",
            ),
            Descriptor(
                "application/vnd.docker.image.rootfs.foreign.diff.tar.gzip",
                512,
                "sha256:cccc",
            ),
        ],
    )


def test_manifest_layers_keep_order() -> None:
    manifest = make_manifest()
    decoded = Manifest.from_dict(manifest.to_dict())

    assert decoded == manifest
    assert [
        (layer.digest, layer.size, layer.media_type) for layer in decoded.layers
    ] == [
        (
            "sha256:bbbb",
            2811478,
            "application/vnd.docker.image.rootfs.diff.tar.gzip",
        ),
        (
            "sha256:cccc",
            512,
            "application/vnd.docker.image.rootfs.foreign.diff.tar.gzip",
        ),
    ]


def test_manifest_registry_field_names() -> None:
    data = make_manifest().to_dict()
    assert data["schemaVersion"] == 2
    assert data["config"]["digest"] == "sha256:aaaa"
    assert data["layers"][1] == {
        "mediaType": "application/vnd.docker.image.rootfs.foreign.diff.tar.gzip",
        "size": 512,
        "digest": "sha256:cccc",
    }


def test_manifest_missing_fields() -> None:
    assert Manifest.from_dict({}) == Manifest()
    assert Manifest.from_dict({"schemaVersion": 1, "layers": None}) == Manifest(
        schema_version=1
    )


def test_manifest_size() -> None:
    assert make_manifest().size == 1469 + 2811478 + 512
    assert Manifest().size == 0


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"schemaVersion": "2"},
        {"schemaVersion": True},
        {"mediaType": 1},
        {"config": "sha256:aaaa"},
        {"layers": {"digest": "sha256:bbbb"}},
        {"layers": [{"size": 1.5}]},
        {"layers": ["sha256:bbbb"]},
    ],
)
def test_manifest_invalid(data: Any) -> None:
    with pytest.raises(DecodeError):
        Manifest.from_dict(data)
