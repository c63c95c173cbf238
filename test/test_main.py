import json

import numpy as np
import pytest

import main
from utils.image_io import write_rgb_image


def _make_input(tmp_path, names=("pano.png",)):
    input_dir = tmp_path / "panos"
    input_dir.mkdir()
    for name in names:
        pano = np.full((32, 64, 3), 90, dtype=np.uint8)
        assert write_rgb_image(input_dir / name, pano)
    return input_dir


def test_zero_cameras_fails_before_any_processing(tmp_path):
    input_dir = _make_input(tmp_path)
    output_dir = tmp_path / "out"

    status = main.main(["-i", str(input_dir), "-o", str(output_dir), "-n", "0"])

    assert status == 1
    assert not output_dir.exists()


def test_missing_paths_fail(tmp_path):
    assert main.main(["-o", str(tmp_path / "out")]) == 1
    assert main.main(["-i", str(tmp_path)]) == 1


def test_non_positive_fov_and_resolution_fail(tmp_path):
    input_dir = _make_input(tmp_path)
    output_dir = tmp_path / "out"

    assert main.main(["-i", str(input_dir), "-o", str(output_dir), "-f", "0"]) == 1
    assert main.main(["-i", str(input_dir), "-o", str(output_dir), "-r", "-1"]) == 1
    assert not output_dir.exists()


def test_empty_input_directory_fails(tmp_path):
    input_dir = tmp_path / "empty"
    input_dir.mkdir()
    output_dir = tmp_path / "out"

    status = main.main(["-i", str(input_dir), "-o", str(output_dir)])

    assert status == 1
    assert output_dir.is_dir()
    assert list(output_dir.iterdir()) == []


def test_conversion_writes_views_and_focal(tmp_path):
    input_dir = _make_input(tmp_path, names=("a.jpg", "b.jpg"))
    output_dir = tmp_path / "out"

    status = main.main([
        "-i", str(input_dir), "-o", str(output_dir),
        "-r", "24", "-n", "3", "-f", "90", "--workers", "2",
    ])

    assert status == 0
    names = sorted(p.name for p in output_dir.iterdir())
    assert names == sorted(
        [f"{s}_{i}.jpg" for s in ("a", "b") for i in range(3)] + ["focal.txt"]
    )
    assert float((output_dir / "focal.txt").read_text()) == pytest.approx(12.0)


def test_demo_mode_writes_only_svg(tmp_path):
    input_dir = _make_input(tmp_path)
    output_dir = tmp_path / "out"

    status = main.main([
        "-i", str(input_dir), "-o", str(output_dir),
        "-D", "-n", "4", "--pano-width", "512",
    ])

    assert status == 0
    assert [p.name for p in output_dir.iterdir()] == ["test.svg"]
    assert "<svg" in (output_dir / "test.svg").read_text(encoding="utf-8")


def test_cli_arguments_override_config_file(tmp_path):
    input_dir = _make_input(tmp_path)
    output_dir = tmp_path / "out"
    config_path = tmp_path / "settings.json"
    config_path.write_text(json.dumps({
        "input_dir": str(input_dir),
        "output_dir": str(output_dir),
        "nb_split": 2,
        "image_resolution": 64,
        "output_image_format": "png",
    }), encoding="utf-8")

    status = main.main(["--config", str(config_path), "-r", "8"])

    assert status == 0
    assert sorted(p.name for p in output_dir.glob("*.png")) == ["pano_0.png", "pano_1.png"]
    assert float((output_dir / "focal.txt").read_text()) == pytest.approx(4.0 / np.tan(np.radians(30.0)))


def test_missing_config_file_fails(tmp_path):
    assert main.main(["--config", str(tmp_path / "nope.json")]) == 1


def test_save_config_writes_merged_settings_for_rerun(tmp_path):
    input_dir = _make_input(tmp_path)
    output_dir = tmp_path / "out"
    saved = tmp_path / "runs" / "settings.json"

    status = main.main([
        "-i", str(input_dir), "-o", str(output_dir),
        "-r", "8", "-n", "2", "--format", "png", "--save-config", str(saved),
    ])

    assert status == 0
    data = json.loads(saved.read_text(encoding="utf-8"))
    assert data["image_resolution"] == 8
    assert data["nb_split"] == 2
    assert data["output_image_format"] == "png"

    rerun_dir = tmp_path / "rerun"
    assert main.main(["--config", str(saved), "-o", str(rerun_dir)]) == 0
    assert sorted(p.name for p in rerun_dir.glob("*.png")) == ["pano_0.png", "pano_1.png"]


def test_invalid_settings_are_not_saved(tmp_path):
    saved = tmp_path / "settings.json"

    status = main.main([
        "-i", str(tmp_path), "-o", str(tmp_path / "out"),
        "-n", "0", "--save-config", str(saved),
    ])

    assert status == 1
    assert not saved.exists()
