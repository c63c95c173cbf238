import math

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

from core.camera_models import compute_cubic_camera_intrinsics, intrinsic_spherical
from core.camera_rig import CameraRig, rotation_around_y
from core.exceptions import ConfigurationError, UnsupportedImageSizeError
from processing.reprojection import (
    PanoramaReprojector,
    build_remap_tables,
    interpolation_flag,
    spherical_to_pinhole,
    spherical_to_pinholes,
)


def _column_gradient(width=256, height=128):
    """R チャンネルに列番号を埋め込んだパノラマ"""
    pano = np.zeros((height, width, 3), dtype=np.uint8)
    pano[:, :, 0] = (np.arange(width) % 256).astype(np.uint8)[np.newaxis, :]
    pano[:, :, 1] = 77
    return pano


ROTATIONS = [
    np.eye(3),
    rotation_around_y(math.radians(72)),
    rotation_around_y(math.pi),
    Rotation.from_euler('xyz', [0.3, 1.1, -0.4]).as_matrix(),
    Rotation.from_rotvec([math.pi / 2, 0.0, 0.0]).as_matrix(),
]


@pytest.mark.parametrize("rotation", ROTATIONS)
@pytest.mark.parametrize("interpolation", ["nearest", "bilinear"])
def test_uniform_panorama_gives_uniform_view(rotation, interpolation):
    color = (10, 200, 30)
    pano = np.full((64, 128, 3), color, dtype=np.uint8)
    pinhole = compute_cubic_camera_intrinsics(32, math.radians(70))

    view = spherical_to_pinhole(pano, pinhole, rotation, interpolation)

    assert view.shape == (32, 32, 3)
    assert view.dtype == np.uint8
    assert np.all(view == np.array(color, dtype=np.uint8))


@pytest.mark.parametrize("rotation", ROTATIONS)
@pytest.mark.parametrize("interpolation", ["bicubic", "lanczos"])
def test_uniform_panorama_with_wide_kernels(rotation, interpolation):
    color = (10, 200, 30)
    pano = np.full((64, 128, 3), color, dtype=np.uint8)
    pinhole = compute_cubic_camera_intrinsics(32, math.radians(70))

    view = spherical_to_pinhole(pano, pinhole, rotation, interpolation)

    diff = np.abs(view.astype(np.int16) - np.array(color, dtype=np.int16))
    assert diff.max() <= 1


def test_optical_axis_samples_panorama_center():
    pano = _column_gradient()
    pinhole = compute_cubic_camera_intrinsics(32)
    center = 16

    front = spherical_to_pinhole(pano, pinhole, np.eye(3), "nearest")
    right = spherical_to_pinhole(pano, pinhole, rotation_around_y(math.pi / 2), "nearest")

    assert front[center, center, 0] == 128
    assert right[center, center, 0] == 192
    assert np.all(front[:, :, 1] == 77)


def test_longitude_seam_wraps_horizontally():
    pano = _column_gradient()
    pinhole = compute_cubic_camera_intrinsics(32)
    center = 16

    back = spherical_to_pinhole(pano, pinhole, rotation_around_y(math.pi), "nearest")

    # 後方中心は列 0、左隣は右端の列、右隣は左端の列から取られる
    assert back[center, center, 0] == 0
    assert 250 <= back[center, center - 1, 0] <= 255
    assert back[center, center + 1, 0] <= 5


@pytest.mark.parametrize("interpolation", ["bilinear", "bicubic", "lanczos"])
def test_poles_clamp_instead_of_wrapping_vertically(interpolation):
    pano = np.zeros((64, 128, 3), dtype=np.uint8)
    pano[:32] = (255, 0, 0)
    pano[32:] = (0, 0, 255)
    pinhole = compute_cubic_camera_intrinsics(24, math.radians(60))
    look_up = Rotation.from_rotvec([math.pi / 2, 0.0, 0.0]).as_matrix()

    view = spherical_to_pinhole(pano, pinhole, look_up, interpolation)

    diff = np.abs(view.astype(np.int16) - np.array([255, 0, 0], dtype=np.int16))
    assert diff.max() <= 1


def test_remap_tables_stay_inside_panorama():
    spherical = intrinsic_spherical(200, 100)
    pinhole = compute_cubic_camera_intrinsics(40, math.radians(120))

    for rotation in ROTATIONS:
        tables = build_remap_tables(spherical, pinhole, rotation)
        assert tables.map_x.shape == (40, 40)
        assert tables.map_x.dtype == np.float32
        assert tables.valid.all()
        assert tables.map_x.min() >= 0.0 and tables.map_x.max() <= 200.0
        assert tables.map_y.min() >= 0.0 and tables.map_y.max() <= 99.0


def test_degenerate_bearings_are_black():
    pano = np.full((32, 64, 3), 255, dtype=np.uint8)
    pinhole = compute_cubic_camera_intrinsics(8)

    # ゼロ行列は全ベアリングをゼロベクトルに潰す
    view = spherical_to_pinhole(pano, pinhole, np.zeros((3, 3)), "bilinear")

    assert view.shape == (8, 8, 3)
    assert np.all(view == 0)


def test_source_is_not_modified():
    pano = _column_gradient(64, 32)
    original = pano.copy()

    spherical_to_pinhole(pano, compute_cubic_camera_intrinsics(16), rotation_around_y(1.0))

    assert np.array_equal(pano, original)


def test_unknown_interpolation_is_rejected():
    assert interpolation_flag("bilinear") is not None
    with pytest.raises(ConfigurationError):
        interpolation_flag("spline36")
    with pytest.raises(ConfigurationError):
        PanoramaReprojector(compute_cubic_camera_intrinsics(8), CameraRig.ring(2), interpolation="area")


@pytest.mark.parametrize("shape", [(8, 33000, 3), (32760, 16, 3)])
def test_panorama_beyond_remap_limit_is_rejected(shape):
    # 縦方向は極のパディング行も含めて判定する
    source = np.full(shape, 50, dtype=np.uint8)

    with pytest.raises(UnsupportedImageSizeError) as excinfo:
        spherical_to_pinhole(source, compute_cubic_camera_intrinsics(8), np.eye(3))
    assert excinfo.value.limit == 32767


def test_pinhole_beyond_remap_limit_is_rejected():
    pinhole = compute_cubic_camera_intrinsics(32767)

    with pytest.raises(UnsupportedImageSizeError):
        build_remap_tables(intrinsic_spherical(64, 32), pinhole, np.eye(3))


def test_reprojector_matches_pure_function_and_caches_tables():
    pano = _column_gradient(128, 64)
    pinhole = compute_cubic_camera_intrinsics(16, math.radians(80))
    rig = CameraRig.ring(5)

    serial = PanoramaReprojector(pinhole, rig, num_workers=1)
    parallel = PanoramaReprojector(pinhole, rig, num_workers=4)

    views_serial = serial.reproject_all(pano)
    views_parallel = parallel.reproject_all(pano)
    expected = spherical_to_pinholes(pano, pinhole, list(rig))

    assert len(views_serial) == len(rig)
    for a, b, c in zip(views_serial, views_parallel, expected):
        assert np.array_equal(a, b)
        assert np.array_equal(a, c)

    assert len(serial._tables_cache) == len(rig)
    cached = serial.tables(128, 64, 0)
    serial.reproject_all(pano)
    assert serial.tables(128, 64, 0) is cached

    serial.clear_cache()
    assert len(serial._tables_cache) == 0


def test_spherical_to_pinholes_parallel_preserves_camera_order():
    pano = _column_gradient()
    pinhole = compute_cubic_camera_intrinsics(8)
    rotations = CameraRig.ring(4).rotations

    views = spherical_to_pinholes(pano, pinhole, rotations, "nearest", num_workers=4)

    assert [int(v[4, 4, 0]) for v in views] == [128, 192, 0, 64]
