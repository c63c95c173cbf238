"""
診断オーバーレイ（デモモード）

各仮想カメラの画像境界をパノラマ上に順方向投影し、SVGとして描画する。
リグ構成（回転・視野角）の目視確認用で、ピクセルの再サンプリングは行わない。
"""

from pathlib import Path
from typing import List, NamedTuple, Union

import numpy as np
from matplotlib.figure import Figure
from matplotlib.patches import Circle

from core.camera_models import PinholeCamera, SphericalCamera
from core.camera_rig import CameraRig
from utils.logger import get_logger

logger = get_logger(__name__)

# 境界点の描画設定
MARKER_RADIUS = 4
VERTICAL_BORDER_COLOR = 'green'
HORIZONTAL_BORDER_COLOR = 'yellow'
GUIDE_LINE_COLOR = 'black'

# SVGのピクセル換算（1インチ = 72pt）
_SVG_DPI = 72


class BorderProjection(NamedTuple):
    """1台分の境界投影結果（パノラマ座標、各 (N, 2)）"""
    vertical: np.ndarray    # 左右の縦境界
    horizontal: np.ndarray  # 上下の横境界


def border_samples(pinhole: PinholeCamera, steps: int = 10):
    """
    ピンホール画像の4辺上のサンプル点を返す。

    各辺を steps 分割し、両端点を含む steps + 1 点を取る。

    Returns:
        (vertical, horizontal): それぞれ (2 * (steps + 1), 2) のピクセル座標
    """
    if steps <= 0:
        raise ValueError(f"steps は1以上である必要があります: {steps}")

    ys = np.linspace(0.0, pinhole.height, steps + 1)
    xs = np.linspace(0.0, pinhole.width, steps + 1)

    vertical = np.concatenate([
        np.stack([np.zeros_like(ys), ys], axis=1),
        np.stack([np.full_like(ys, pinhole.width), ys], axis=1),
    ])
    horizontal = np.concatenate([
        np.stack([xs, np.zeros_like(xs)], axis=1),
        np.stack([xs, np.full_like(xs, pinhole.height)], axis=1),
    ])
    return vertical, horizontal


def project_rig_borders(spherical: SphericalCamera,
                        pinhole: PinholeCamera,
                        rig: CameraRig,
                        steps: int = 10) -> List[BorderProjection]:
    """リグの各カメラについて、画像境界をパノラマ上に投影する"""
    vertical, horizontal = border_samples(pinhole, steps)
    vertical_bearings = pinhole.pixel_to_bearing(vertical)
    horizontal_bearings = pinhole.pixel_to_bearing(horizontal)

    projections = []
    for rotation in rig:
        projections.append(BorderProjection(
            spherical.project(vertical_bearings @ rotation.T),
            spherical.project(horizontal_bearings @ rotation.T),
        ))
    return projections


def render_overlay(spherical: SphericalCamera,
                   pinhole: PinholeCamera,
                   rig: CameraRig,
                   steps: int = 10) -> Figure:
    """
    パノラマサイズのキャンバスにガイド線と境界点を描画した Figure を返す

    Args:
        spherical: 参照パノラマの球面カメラ（キャンバスサイズ）
        pinhole: 仮想ピンホールカメラ
        rig: 仮想カメラリグ
        steps: 1辺あたりの分割数

    Returns:
        matplotlib Figure（ピクセル座標系、原点左上）
    """
    width, height = spherical.width, spherical.height

    fig = Figure(figsize=(width / _SVG_DPI, height / _SVG_DPI), dpi=_SVG_DPI)
    ax = fig.add_axes([0.0, 0.0, 1.0, 1.0])
    ax.set_xlim(0, width)
    ax.set_ylim(height, 0)
    ax.set_aspect('equal')
    ax.axis('off')

    # 対角線のガイド
    ax.plot([0, width], [0, height], color=GUIDE_LINE_COLOR, linewidth=1)
    ax.plot([width, 0], [0, height], color=GUIDE_LINE_COLOR, linewidth=1)

    for projection in project_rig_borders(spherical, pinhole, rig, steps):
        for points, color in ((projection.vertical, VERTICAL_BORDER_COLOR),
                              (projection.horizontal, HORIZONTAL_BORDER_COLOR)):
            for x, y in points:
                if not (np.isfinite(x) and np.isfinite(y)):
                    continue
                ax.add_patch(Circle((x, y), MARKER_RADIUS, facecolor=color,
                                    edgecolor=GUIDE_LINE_COLOR, linewidth=0.5))

    return fig


def write_overlay(path: Union[str, Path],
                  spherical: SphericalCamera,
                  pinhole: PinholeCamera,
                  rig: CameraRig,
                  steps: int = 10) -> Path:
    """オーバーレイをSVGファイルとして保存する"""
    path = Path(path)
    fig = render_overlay(spherical, pinhole, rig, steps)
    fig.savefig(path, format='svg')
    logger.info(f"SVGオーバーレイを保存しました: {path} "
                f"({spherical.width}x{spherical.height}, {len(rig)}カメラ)")
    return path
