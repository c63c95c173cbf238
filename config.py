"""
pano2pinhole - Configuration
360度パノラマ → ピンホール画像変換の設定

dataclassベースの構造化された設定とレガシー定数を併存。
CLIでは デフォルト → 設定ファイル(JSON) → コマンドライン引数 の順で上書きする。
"""

import json
import math
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Tuple, Union

from core.exceptions import ConfigurationError


# =============================================================================
# レガシー定数（既定値）
# =============================================================================

# === 仮想カメラ ===
IMAGE_RESOLUTION = 1024
NB_SPLIT = 5
PINHOLE_FOV = 60.0

# === 入出力 ===
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".tif", ".tiff")
OUTPUT_IMAGE_FORMAT = "jpg"
OUTPUT_JPEG_QUALITY = 95
OUTPUT_FORMATS = ("jpg", "png", "tiff")
FOCAL_FILE_NAME = "focal.txt"

# === 再投影 ===
INTERPOLATION = "bilinear"
INTERPOLATION_METHODS = ("nearest", "bilinear", "bicubic", "lanczos")

# === デモモード（SVGオーバーレイ） ===
DEMO_PANO_WIDTH = 4096
DEMO_BORDER_STEPS = 10
DEMO_SVG_NAME = "test.svg"

# === cv2.remap の制約 ===
# 入力・出力ともに一辺が SHRT_MAX（32767）未満である必要がある
REMAP_SIZE_LIMIT = 32767


def _default_workers() -> int:
    return os.cpu_count() or 4


# =============================================================================
# データクラスベース設定
# =============================================================================

@dataclass
class ConverterConfig:
    """
    パノラマ変換の統合設定

    Attributes:
    -----------
    input_dir : str
        球面パノラマ画像のディレクトリ
    output_dir : str
        ピンホール画像の出力先
    image_resolution : int
        出力ピンホール画像の一辺（ピクセル）
    nb_split : int
        鉛直軸周りの仮想カメラ数
    fov : float
        ピンホールカメラの視野角（度）
    demo_mode : bool
        Trueの場合は画像変換せずSVGオーバーレイのみ出力
    """
    input_dir: str = ""
    output_dir: str = ""
    image_resolution: int = IMAGE_RESOLUTION
    nb_split: int = NB_SPLIT
    fov: float = PINHOLE_FOV
    demo_mode: bool = False

    # 入出力
    image_extensions: Tuple[str, ...] = IMAGE_EXTENSIONS
    output_image_format: str = OUTPUT_IMAGE_FORMAT
    output_jpeg_quality: int = OUTPUT_JPEG_QUALITY

    # 再投影
    interpolation: str = INTERPOLATION
    num_workers: int = field(default_factory=_default_workers)

    # デモモード
    demo_pano_width: int = DEMO_PANO_WIDTH
    demo_border_steps: int = DEMO_BORDER_STEPS

    @property
    def fov_radians(self) -> float:
        """視野角（ラジアン）"""
        return math.radians(self.fov)

    def validate(self, require_paths: bool = True) -> 'ConverterConfig':
        """
        パラメータを検証する。不正な場合は ConfigurationError を送出。

        Parameters:
        -----------
        require_paths : bool
            input_dir / output_dir の指定を必須とするか

        Returns:
        --------
        ConverterConfig
            self（チェーン呼び出し用）
        """
        if self.image_resolution <= 0:
            raise ConfigurationError("image_resolution は1以上である必要があります",
                                     parameter="image_resolution", value=self.image_resolution)
        if self.image_resolution >= REMAP_SIZE_LIMIT:
            raise ConfigurationError(f"image_resolution は {REMAP_SIZE_LIMIT} 未満である必要があります",
                                     parameter="image_resolution", value=self.image_resolution)
        if self.nb_split <= 0:
            raise ConfigurationError("nb_split は1以上である必要があります",
                                     parameter="nb_split", value=self.nb_split)
        if not 0.0 < self.fov < 180.0:
            raise ConfigurationError("fov は 0 より大きく 180 未満である必要があります",
                                     parameter="fov", value=self.fov)
        if require_paths and (not self.input_dir or not self.output_dir):
            raise ConfigurationError("input_dir と output_dir は空にできません",
                                     parameter="input_dir/output_dir",
                                     value=(self.input_dir, self.output_dir))
        if self.interpolation not in INTERPOLATION_METHODS:
            raise ConfigurationError(f"未対応の補間方法です（{', '.join(INTERPOLATION_METHODS)}）",
                                     parameter="interpolation", value=self.interpolation)
        if self.output_image_format not in OUTPUT_FORMATS:
            raise ConfigurationError(f"未対応の出力フォーマットです（{', '.join(OUTPUT_FORMATS)}）",
                                     parameter="output_image_format", value=self.output_image_format)
        if not 0 <= self.output_jpeg_quality <= 100:
            raise ConfigurationError("JPEG品質は 0-100 の範囲である必要があります",
                                     parameter="output_jpeg_quality", value=self.output_jpeg_quality)
        if self.num_workers <= 0:
            raise ConfigurationError("num_workers は1以上である必要があります",
                                     parameter="num_workers", value=self.num_workers)
        if self.demo_pano_width <= 0 or self.demo_pano_width % 2:
            raise ConfigurationError("demo_pano_width は正の偶数である必要があります",
                                     parameter="demo_pano_width", value=self.demo_pano_width)
        if self.demo_border_steps <= 0:
            raise ConfigurationError("demo_border_steps は1以上である必要があります",
                                     parameter="demo_border_steps", value=self.demo_border_steps)
        if not self.image_extensions:
            raise ConfigurationError("image_extensions が空です",
                                     parameter="image_extensions", value=self.image_extensions)
        return self

    def to_dict(self) -> dict:
        """JSON保存用のdictに変換"""
        d = asdict(self)
        d['image_extensions'] = list(self.image_extensions)
        return d

    @classmethod
    def from_dict(cls, d: dict) -> 'ConverterConfig':
        """
        設定dictからConverterConfigを生成

        未知のキーは無視する。
        """
        config = cls()
        config.input_dir = str(d.get('input_dir', config.input_dir) or "")
        config.output_dir = str(d.get('output_dir', config.output_dir) or "")
        config.image_resolution = int(d.get('image_resolution', config.image_resolution))
        config.nb_split = int(d.get('nb_split', config.nb_split))
        config.fov = float(d.get('fov', config.fov))
        config.demo_mode = bool(d.get('demo_mode', config.demo_mode))

        extensions = d.get('image_extensions', config.image_extensions)
        if isinstance(extensions, str):
            extensions = [extensions]
        config.image_extensions = tuple(
            ext.lower() if ext.startswith('.') else f".{ext.lower()}" for ext in extensions
        )
        config.output_image_format = str(d.get('output_image_format', config.output_image_format)).lower()
        config.output_jpeg_quality = int(d.get('output_jpeg_quality', config.output_jpeg_quality))

        config.interpolation = str(d.get('interpolation', config.interpolation)).lower()
        config.num_workers = int(d.get('num_workers', config.num_workers))

        config.demo_pano_width = int(d.get('demo_pano_width', config.demo_pano_width))
        config.demo_border_steps = int(d.get('demo_border_steps', config.demo_border_steps))
        return config

    @classmethod
    def load(cls, path: Union[str, Path]) -> 'ConverterConfig':
        """JSONファイルから設定を読み込む"""
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ConfigurationError("設定ファイルのトップレベルはオブジェクトである必要があります",
                                     parameter="config", value=str(path))
        return cls.from_dict(data)

    def save(self, path: Union[str, Path]) -> None:
        """JSONファイルに設定を保存する"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(self.to_dict(), f, ensure_ascii=False, indent=2)
