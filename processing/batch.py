"""
バッチ変換モジュール
入力ディレクトリの全パノラマを、リグの全仮想カメラについてピンホール画像へ変換する
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from config import ConverterConfig, FOCAL_FILE_NAME
from core.camera_models import compute_cubic_camera_intrinsics, PinholeCamera
from core.camera_rig import CameraRig
from core.exceptions import (
    ImageDecodeError,
    NoInputImagesError,
    OutputDirectoryError,
    UnsupportedImageSizeError,
)
from processing.reprojection import PanoramaReprojector
from utils.image_io import encode_params, list_images, read_image, write_rgb_image
from utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class BatchResult:
    """
    バッチ変換結果

    Attributes:
    -----------
    processed : List[str]
        変換できたソース画像名
    skipped : List[str]
        読み込めない、またはサイズ超過でスキップしたソース画像名
    written : List[Path]
        保存したピンホール画像のパス
    failed_writes : List[Path]
        保存に失敗したパス
    focal : float
        全カメラ共通の焦点距離（ピクセル）
    focal_path : Path, optional
        focal.txt のパス
    """
    processed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    written: List[Path] = field(default_factory=list)
    failed_writes: List[Path] = field(default_factory=list)
    focal: float = 0.0
    focal_path: Optional[Path] = None


def output_filename(source: Path, camera_index: int, fmt: str) -> str:
    """出力ファイル名: {basename}_{camera_index}.{ext}"""
    return f"{Path(source).stem}_{camera_index}.{fmt}"


def ensure_output_dir(output_dir) -> Path:
    """出力ディレクトリを作成する（既存ならそのまま）"""
    output_dir = Path(output_dir)
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise OutputDirectoryError(output_dir, str(e)) from e
    if not output_dir.is_dir():
        raise OutputDirectoryError(output_dir, "ディレクトリではありません")
    return output_dir


def write_focal_file(output_dir: Path, focal: float) -> Path:
    """焦点距離を10進文字列で focal.txt に書き出す"""
    focal_path = Path(output_dir) / FOCAL_FILE_NAME
    focal_path.write_text(repr(float(focal)), encoding='utf-8')
    return focal_path


class PanoramaBatchConverter:
    """
    パノラマ → ピンホール画像のバッチ変換

    リグとピンホール内部パラメータは構築時に一度だけ作成し、
    全入力画像で読み取り専用として共有する。

    使用例:
    --------
    >>> config = ConverterConfig(nb_split=4, fov=90.0)
    >>> result = PanoramaBatchConverter(config).run("panos/", "out/")
    >>> print(len(result.written))
    """

    def __init__(self, config: ConverterConfig, rig: Optional[CameraRig] = None):
        config.validate(require_paths=False)
        self.config = config
        self.rig = rig if rig is not None else CameraRig.ring(config.nb_split)
        self.pinhole: PinholeCamera = compute_cubic_camera_intrinsics(
            config.image_resolution, config.fov_radians
        )
        self.reprojector = PanoramaReprojector(
            self.pinhole,
            self.rig,
            interpolation=config.interpolation,
            num_workers=config.num_workers,
        )

    @property
    def focal(self) -> float:
        return self.pinhole.focal

    def run(self, input_dir, output_dir,
            progress_callback: Optional[Callable[[int, int, str], None]] = None) -> BatchResult:
        """
        バッチ変換を実行する。

        Parameters:
        -----------
        input_dir : str or Path
            パノラマ画像ディレクトリ
        output_dir : str or Path
            出力ディレクトリ（なければ作成）
        progress_callback : callable, optional
            (current, total, message) を受け取る進捗コールバック

        Returns:
        --------
        BatchResult

        Raises:
        -------
        OutputDirectoryError
            出力ディレクトリを作成できない場合
        NoInputImagesError
            入力画像が1枚もない場合
        """
        output_dir = ensure_output_dir(output_dir)

        sources = list_images(input_dir, self.config.image_extensions)
        if not sources:
            raise NoInputImagesError(input_dir, self.config.image_extensions)

        logger.info(f"入力画像: {len(sources)}枚, 仮想カメラ: {len(self.rig)}台, "
                    f"解像度: {self.pinhole.width}x{self.pinhole.height}, "
                    f"焦点距離: {self.focal:.3f}px")

        result = BatchResult(focal=self.focal)
        fmt = self.config.output_image_format
        params = encode_params(fmt, self.config.output_jpeg_quality)

        for i, source in enumerate(sources):
            try:
                panorama = read_image(source)
                views = self.reprojector.reproject_all(panorama)
            except (ImageDecodeError, UnsupportedImageSizeError) as e:
                logger.warning(f"スキップ: {e}")
                result.skipped.append(source.name)
                continue
            del panorama

            for camera_index, view in enumerate(views):
                out_path = output_dir / output_filename(source, camera_index, fmt)
                if write_rgb_image(out_path, view, params):
                    result.written.append(out_path)
                    logger.debug(f"{source.stem} cam index: {camera_index} -> {out_path.name}")
                else:
                    result.failed_writes.append(out_path)
            result.processed.append(source.name)

            if progress_callback:
                progress_callback(i + 1, len(sources), source.name)

        result.focal_path = write_focal_file(output_dir, self.focal)
        self.reprojector.clear_cache()

        logger.info(f"変換完了: {len(result.processed)}枚処理, {len(result.skipped)}枚スキップ, "
                    f"{len(result.written)}ファイル出力")
        return result
