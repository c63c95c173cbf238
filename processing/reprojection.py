"""
再投影エンジン
球面パノラマ（Equirectangular）から仮想ピンホールカメラ画像を生成する
cv2.remap() + UV キャッシング + 逆方向マッピング

出力ピクセルごとに:
    1. ピンホールのピクセル → ベアリング（カメラ座標系）
    2. 回転行列でパノラマ座標系へ回転
    3. 球面カメラでパノラマ上の実数座標へ投影
    4. 補間カーネルでサンプリング

境界処理:
    経度方向（横）はパノラマ幅で周期的にラップする。
    緯度方向（縦）は [0, height-1] にクランプし、極の行を複製した
    パディングによって広いカーネル（bicubic, lanczos）でもクランプになる。
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import cv2
import numpy as np

from core.camera_models import (
    PinholeCamera,
    SphericalCamera,
    intrinsic_spherical,
    valid_bearings,
)
from core.camera_rig import CameraRig
from config import REMAP_SIZE_LIMIT
from core.exceptions import ConfigurationError, UnsupportedImageSizeError
from utils.logger import get_logger

logger = get_logger(__name__)

# 補間カーネル名 → cv2 フラグ
INTERPOLATION_FLAGS = {
    'nearest': cv2.INTER_NEAREST,
    'bilinear': cv2.INTER_LINEAR,
    'bicubic': cv2.INTER_CUBIC,
    'lanczos': cv2.INTER_LANCZOS4,
}

# 極側のパディング行数（Lanczos4 の 8x8 サポートを覆う）
POLE_PADDING = 4

# 縮退ピクセルの背景値（黒）
BACKGROUND_VALUE = 0


class RemapTables(NamedTuple):
    """cv2.remap() 用の座標マップと有効ピクセルマスク"""
    map_x: np.ndarray  # (H, W) float32
    map_y: np.ndarray  # (H, W) float32
    valid: np.ndarray  # (H, W) bool


def check_remap_size(height: int, width: int) -> None:
    """cv2.remap() が扱えるサイズか確認する（一辺 REMAP_SIZE_LIMIT 未満）"""
    if height >= REMAP_SIZE_LIMIT or width >= REMAP_SIZE_LIMIT:
        raise UnsupportedImageSizeError((height, width), REMAP_SIZE_LIMIT)


def interpolation_flag(name: str) -> int:
    """補間方法名を cv2 の補間フラグに変換する"""
    try:
        return INTERPOLATION_FLAGS[name]
    except KeyError:
        raise ConfigurationError(
            f"未対応の補間方法です（{', '.join(INTERPOLATION_FLAGS)}）",
            parameter="interpolation", value=name,
        ) from None


def build_remap_tables(spherical: SphericalCamera,
                       pinhole: PinholeCamera,
                       rotation: np.ndarray) -> RemapTables:
    """
    ピンホール画像の各ピクセルに対応するパノラマ上の座標マップを計算

    Args:
        spherical: ソースパノラマの球面カメラ
        pinhole: 出力ピンホールカメラ
        rotation: 仮想カメラの回転行列 (3x3)

    Returns:
        RemapTables: map_y はパディング前の行座標
    """
    check_remap_size(pinhole.height, pinhole.width)
    rotation = np.asarray(rotation, dtype=np.float64)

    # ピンホール画像上のピクセル座標をメッシュ生成
    u, v = np.meshgrid(
        np.arange(pinhole.width, dtype=np.float64),
        np.arange(pinhole.height, dtype=np.float64),
    )
    pixels = np.stack([u.ravel(), v.ravel()], axis=1)

    # カメラ座標系のベアリング → パノラマ座標系（R · b を行ベクトルで計算）
    bearings_local = pinhole.pixel_to_bearing(pixels)
    bearings_world = bearings_local @ rotation.T

    valid = valid_bearings(bearings_world)
    sphere = spherical.project(bearings_world)

    # 360度ラップ（横）と極でのクランプ（縦）
    with np.errstate(invalid='ignore'):
        map_x = np.mod(sphere[:, 0], spherical.width)
        map_y = np.clip(sphere[:, 1], 0.0, spherical.height - 1)
    map_x[~valid] = 0.0
    map_y[~valid] = 0.0

    shape = (pinhole.height, pinhole.width)
    return RemapTables(
        map_x.reshape(shape).astype(np.float32),
        map_y.reshape(shape).astype(np.float32),
        valid.reshape(shape),
    )


def pad_poles(source: np.ndarray, padding: int = POLE_PADDING) -> np.ndarray:
    """パノラマの上下端の行を複製してパディングする（横方向はそのまま）"""
    if source.ndim not in (2, 3) or source.shape[0] == 0 or source.shape[1] == 0:
        raise ValueError(f"不正なパノラマ画像です: shape={source.shape}")
    check_remap_size(source.shape[0] + 2 * padding, source.shape[1])
    return cv2.copyMakeBorder(source, padding, padding, 0, 0, cv2.BORDER_REPLICATE)


def remap_padded(padded_source: np.ndarray,
                 tables: RemapTables,
                 interpolation: str = 'bilinear',
                 padding: int = POLE_PADDING) -> np.ndarray:
    """
    pad_poles() 済みのパノラマを座標マップでサンプリングする。

    無効ピクセルは背景値（黒）で埋める。
    """
    flag = interpolation_flag(interpolation)
    sampled = cv2.remap(
        padded_source,
        tables.map_x,
        tables.map_y + np.float32(padding),
        flag,
        borderMode=cv2.BORDER_WRAP,
    )
    sampled[~tables.valid] = BACKGROUND_VALUE
    return sampled


def spherical_to_pinhole(source: np.ndarray,
                         pinhole: PinholeCamera,
                         rotation: np.ndarray,
                         interpolation: str = 'bilinear') -> np.ndarray:
    """
    球面パノラマ1枚から1台分のピンホール画像を生成する（副作用なし）

    Args:
        source: Equirectangular画像 (H x W x C)
        pinhole: 出力ピンホールカメラ
        rotation: 仮想カメラの回転行列 (3x3)
        interpolation: 'nearest' / 'bilinear' / 'bicubic' / 'lanczos'

    Returns:
        ピンホール画像 (pinhole.height x pinhole.width x C)
    """
    height, width = source.shape[:2]
    tables = build_remap_tables(intrinsic_spherical(width, height), pinhole, rotation)
    return remap_padded(pad_poles(source), tables, interpolation)


def spherical_to_pinholes(source: np.ndarray,
                          pinhole: PinholeCamera,
                          rotations: Sequence[np.ndarray],
                          interpolation: str = 'bilinear',
                          num_workers: int = 1) -> List[np.ndarray]:
    """
    全仮想カメラ分のピンホール画像を生成する

    パディングは1回だけ行い、カメラごとの処理はスレッドプールで並列化する。
    """
    height, width = source.shape[:2]
    spherical = intrinsic_spherical(width, height)
    padded = pad_poles(source)

    def _project(rotation):
        tables = build_remap_tables(spherical, pinhole, rotation)
        return remap_padded(padded, tables, interpolation)

    if num_workers <= 1 or len(rotations) <= 1:
        return [_project(rotation) for rotation in rotations]

    with ThreadPoolExecutor(max_workers=min(num_workers, len(rotations))) as executor:
        return list(executor.map(_project, rotations))


class PanoramaReprojector:
    """
    カメラリグ全体の再投影を行うクラス（UV マップキャッシュ付き）

    同じサイズのパノラマが続くバッチでは、各カメラの座標マップは
    最初の1枚で計算したものを再利用する。
    """

    def __init__(self, pinhole: PinholeCamera, rig: CameraRig,
                 interpolation: str = 'bilinear', num_workers: int = 1):
        interpolation_flag(interpolation)
        self.pinhole = pinhole
        self.rig = rig
        self.interpolation = interpolation
        self.num_workers = max(1, int(num_workers))

        # key: (src_w, src_h, camera_index)
        self._tables_cache: Dict[Tuple[int, int, int], RemapTables] = {}
        self._cache_lock = threading.Lock()

    def tables(self, src_width: int, src_height: int, camera_index: int) -> RemapTables:
        """座標マップを取得（キャッシュがなければ計算）"""
        cache_key = (src_width, src_height, camera_index)
        with self._cache_lock:
            cached = self._tables_cache.get(cache_key)
        if cached is not None:
            return cached

        tables = build_remap_tables(
            intrinsic_spherical(src_width, src_height),
            self.pinhole,
            self.rig[camera_index],
        )
        with self._cache_lock:
            self._tables_cache[cache_key] = tables
        logger.debug(f"UVマップ計算: src={src_width}x{src_height}, cam={camera_index}")
        return tables

    def reproject(self, source: np.ndarray, camera_index: int,
                  padded_source: Optional[np.ndarray] = None) -> np.ndarray:
        """1台分のピンホール画像を生成"""
        height, width = source.shape[:2]
        if padded_source is None:
            padded_source = pad_poles(source)
        tables = self.tables(width, height, camera_index)
        return remap_padded(padded_source, tables, self.interpolation)

    def reproject_all(self, source: np.ndarray) -> List[np.ndarray]:
        """リグの全カメラ分のピンホール画像をカメラ順に生成"""
        padded = pad_poles(source)
        indices = range(len(self.rig))

        if self.num_workers <= 1 or len(self.rig) <= 1:
            return [self.reproject(source, i, padded) for i in indices]

        with ThreadPoolExecutor(max_workers=min(self.num_workers, len(self.rig))) as executor:
            return list(executor.map(lambda i: self.reproject(source, i, padded), indices))

    def clear_cache(self) -> None:
        """UV マップキャッシュを破棄"""
        with self._cache_lock:
            self._tables_cache.clear()
