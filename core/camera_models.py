"""
カメラモデルモジュール - pano2pinhole用

球面（Equirectangular）カメラとピンホールカメラの2つの閉形式モデル。
どちらも正規化された3D方向ベクトル（ベアリング）と2D画像座標の間を
相互に変換する。I/Oや可変状態は持たない。

座標系:
    x: 画像右方向, y: 画像下方向, z: カメラ前方
"""

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from core.exceptions import ConfigurationError

# 立方体の1面に相当する視野角（90度）
CUBE_FACE_FOV = math.pi / 2


def _as_points(values, dim: int) -> Tuple[np.ndarray, bool]:
    """
    入力を (N, dim) の float64 配列に揃える。

    Returns:
    --------
    (points, single)
        single は入力が1点（1次元配列）だったかどうか
    """
    arr = np.asarray(values, dtype=np.float64)
    single = arr.ndim == 1
    arr = np.atleast_2d(arr)
    if arr.shape[-1] != dim:
        raise ValueError(f"最終次元は {dim} である必要があります: shape={arr.shape}")
    return arr, single


def valid_bearings(bearings) -> np.ndarray:
    """有限かつ非ゼロのベアリングのみTrueとなるマスクを返す"""
    pts, single = _as_points(bearings, 3)
    norms = np.linalg.norm(pts, axis=1)
    mask = np.isfinite(norms) & (norms > 0.0)
    return mask[0] if single else mask


@dataclass(frozen=True)
class SphericalCamera:
    """
    球面（Equirectangular）カメラモデル

    経度 = atan2(x, z) を [0, width)、緯度 = asin(y / |b|) を [0, height] に
    線形に割り当てる。経度0は列 width / 2 に対応する。
    列は width で折り返すため u == width は返さない。行は真下（+Y）で
    v == height となる閉区間（openMVG の Intrinsic_Spherical と同じ）。

    Attributes:
    -----------
    width : int
        パノラマ画像の幅
    height : int
        パノラマ画像の高さ
    """
    width: int
    height: int

    def project(self, bearings) -> np.ndarray:
        """
        ベアリングをパノラマ上のピクセル座標 (u, v) に投影する。

        ゼロベクトルは NaN を返す。呼び出し側で valid_bearings() により除外すること。
        """
        pts, single = _as_points(bearings, 3)
        x, y, z = pts[:, 0], pts[:, 1], pts[:, 2]
        norms = np.linalg.norm(pts, axis=1)

        with np.errstate(invalid='ignore', divide='ignore'):
            lon = np.arctan2(x, z)
            lat = np.arcsin(np.clip(y / norms, -1.0, 1.0))
            u = np.mod(self.width * (0.5 + lon / (2.0 * np.pi)), self.width)
        v = self.height * (0.5 + lat / np.pi)

        degenerate = ~(np.isfinite(norms) & (norms > 0.0))
        u[degenerate] = np.nan
        v[degenerate] = np.nan

        pixels = np.stack([u, v], axis=1)
        return pixels[0] if single else pixels

    def unproject(self, pixels) -> np.ndarray:
        """パノラマのピクセル座標を単位ベアリングに変換する（project の逆変換）"""
        pts, single = _as_points(pixels, 2)
        lon = (pts[:, 0] / self.width - 0.5) * 2.0 * np.pi
        lat = (pts[:, 1] / self.height - 0.5) * np.pi

        cos_lat = np.cos(lat)
        bearings = np.stack([
            cos_lat * np.sin(lon),
            np.sin(lat),
            cos_lat * np.cos(lon),
        ], axis=1)
        return bearings[0] if single else bearings


@dataclass(frozen=True)
class PinholeCamera:
    """
    ピンホールカメラモデル（歪みなし）

    ピクセル→ベアリング（pixel_to_bearing）とベアリング→ピクセル（project）の
    2方向を別々のメソッドとして提供する。

    Attributes:
    -----------
    width : int
        画像幅
    height : int
        画像高さ
    focal : float
        焦点距離（ピクセル）
    principal_point : Tuple[float, float]
        主点 (cx, cy)
    """
    width: int
    height: int
    focal: float
    principal_point: Tuple[float, float]

    @property
    def K(self) -> np.ndarray:
        """3x3 内部パラメータ行列"""
        cx, cy = self.principal_point
        return np.array([
            [self.focal, 0.0, cx],
            [0.0, self.focal, cy],
            [0.0, 0.0, 1.0],
        ], dtype=np.float64)

    @property
    def fov(self) -> float:
        """垂直視野角（ラジアン）"""
        return fov_from_pinhole_height(self.height, self.focal)

    def pixel_to_bearing(self, pixels) -> np.ndarray:
        """ピクセル座標 (u, v) を単位ベアリングに変換する"""
        pts, single = _as_points(pixels, 2)
        cx, cy = self.principal_point
        bearings = np.empty((pts.shape[0], 3), dtype=np.float64)
        bearings[:, 0] = (pts[:, 0] - cx) / self.focal
        bearings[:, 1] = (pts[:, 1] - cy) / self.focal
        bearings[:, 2] = 1.0
        bearings /= np.linalg.norm(bearings, axis=1, keepdims=True)
        return bearings[0] if single else bearings

    def in_front(self, bearings) -> np.ndarray:
        """カメラ前方（z > 0）にあるベアリングのマスク"""
        pts, single = _as_points(bearings, 3)
        mask = np.isfinite(pts).all(axis=1) & (pts[:, 2] > 0.0)
        return mask[0] if single else mask

    def project(self, bearings) -> np.ndarray:
        """
        ベアリングをピクセル座標に透視投影する。

        z <= 0（カメラ背面）のベアリングは NaN を返す。
        """
        pts, single = _as_points(bearings, 3)
        cx, cy = self.principal_point
        front = self.in_front(pts)

        pixels = np.full((pts.shape[0], 2), np.nan, dtype=np.float64)
        z = pts[front, 2]
        pixels[front, 0] = self.focal * pts[front, 0] / z + cx
        pixels[front, 1] = self.focal * pts[front, 1] / z + cy
        return pixels[0] if single else pixels


def intrinsic_spherical(width: int, height: int) -> SphericalCamera:
    """360x180度パノラマ全体をカバーする球面カメラを生成する"""
    if width <= 0 or height <= 0:
        raise ConfigurationError(
            "パノラマサイズは正の値である必要があります",
            parameter="pano_size", value=(width, height),
        )
    return SphericalCamera(int(width), int(height))


def focal_from_pinhole_height(height: int, fov_radians: float) -> float:
    """
    画像高さと垂直視野角から焦点距離を求める。

    focal = (height / 2) / tan(fov / 2)

    Parameters:
    -----------
    height : int
        ピンホール画像の高さ（ピクセル）
    fov_radians : float
        垂直視野角（ラジアン、0 < fov < pi）

    Returns:
    --------
    float
        焦点距離（ピクセル）
    """
    if height <= 0:
        raise ConfigurationError("画像高さは正の値である必要があります",
                                 parameter="height", value=height)
    if not 0.0 < fov_radians < math.pi:
        raise ConfigurationError("視野角は (0, 180) 度の範囲である必要があります",
                                 parameter="fov", value=math.degrees(fov_radians))
    return (height / 2.0) / math.tan(fov_radians / 2.0)


def fov_from_pinhole_height(height: int, focal: float) -> float:
    """焦点距離と画像高さから垂直視野角（ラジアン）を復元する"""
    return 2.0 * math.atan2(height / 2.0, focal)


def compute_cubic_camera_intrinsics(resolution: int,
                                    fov_radians: float = CUBE_FACE_FOV) -> PinholeCamera:
    """
    正方形ピンホールカメラを生成する。

    主点は画像中心。既定の視野角（90度）では単位球に外接する立方体の
    1面に一致し、焦点距離は resolution / 2 となる。
    """
    if resolution <= 0:
        raise ConfigurationError("解像度は正の値である必要があります",
                                 parameter="resolution", value=resolution)
    focal = focal_from_pinhole_height(resolution, fov_radians)
    center = resolution / 2.0
    return PinholeCamera(int(resolution), int(resolution), focal, (center, center))
