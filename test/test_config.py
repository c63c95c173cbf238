import json

import pytest

from config import ConverterConfig
from core.exceptions import ConfigurationError


def test_defaults_match_cli_surface():
    config = ConverterConfig()

    assert config.image_resolution == 1024
    assert config.nb_split == 5
    assert config.fov == 60.0
    assert config.demo_mode is False
    assert config.interpolation == "bilinear"
    assert config.num_workers >= 1


@pytest.mark.parametrize("overrides", [
    {"image_resolution": 0},
    {"image_resolution": -10},
    {"image_resolution": 32767},
    {"nb_split": 0},
    {"nb_split": -3},
    {"fov": 0.0},
    {"fov": -45.0},
    {"fov": 180.0},
    {"interpolation": "area"},
    {"output_image_format": "gif"},
    {"output_jpeg_quality": 101},
    {"num_workers": 0},
    {"demo_pano_width": 4095},
])
def test_invalid_parameters_are_configuration_errors(overrides):
    config = ConverterConfig(input_dir="in", output_dir="out", **overrides)

    with pytest.raises(ConfigurationError) as excinfo:
        config.validate()
    assert excinfo.value.parameter


def test_paths_are_required_unless_disabled():
    with pytest.raises(ConfigurationError):
        ConverterConfig(input_dir="", output_dir="out").validate()
    with pytest.raises(ConfigurationError):
        ConverterConfig(input_dir="in", output_dir="").validate()

    assert ConverterConfig().validate(require_paths=False) is not None


def test_from_dict_normalizes_values():
    config = ConverterConfig.from_dict({
        "nb_split": "8",
        "fov": 75,
        "image_extensions": ["JPG", ".Png"],
        "output_image_format": "PNG",
        "unknown_key": 1,
    })

    assert config.nb_split == 8
    assert config.fov == 75.0
    assert config.image_extensions == (".jpg", ".png")
    assert config.output_image_format == "png"
    assert config.image_resolution == 1024


def test_save_and_load_round_trip(tmp_path):
    original = ConverterConfig(input_dir="in", output_dir="out", nb_split=7, fov=45.5)
    path = tmp_path / "conf" / "settings.json"

    original.save(path)
    loaded = ConverterConfig.load(path)

    assert loaded == original
    assert json.loads(path.read_text(encoding="utf-8"))["nb_split"] == 7


def test_load_rejects_non_object_json(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        ConverterConfig.load(path)
