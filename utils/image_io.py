"""
画像I/Oユーティリティ

入力ディレクトリの列挙、画像の読み込み（RGB）と保存を行う。
Windows環境で日本語など非ASCII文字を含むパスでも安全に読み書きするため、
cv2.imread / cv2.imwrite ではなく imdecode / imencode を使用する。
"""

from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import cv2
import numpy as np

from core.exceptions import ImageDecodeError
from utils.logger import get_logger

logger = get_logger(__name__)


PathLike = Union[str, Path]


def list_images(directory: PathLike, extensions: Iterable[str]) -> List[Path]:
    """
    ディレクトリ直下の画像ファイルを名前順に列挙する。

    拡張子は大文字小文字を区別しない。
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []

    suffixes = {ext.lower() if ext.startswith('.') else f".{ext.lower()}" for ext in extensions}
    return sorted(
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() in suffixes
    )


def read_image(path: PathLike) -> np.ndarray:
    """
    Unicodeパス対応で画像を読み込み、RGB (H x W x 3, uint8) で返す。

    Raises:
    -------
    ImageDecodeError
        ファイルが読めない、またはデコードできない場合
    """
    path_obj = Path(path)
    try:
        data = np.fromfile(str(path_obj), dtype=np.uint8)
    except OSError as e:
        raise ImageDecodeError(path_obj, str(e)) from e

    if data.size == 0:
        raise ImageDecodeError(path_obj, "空のファイル")

    image = cv2.imdecode(data, cv2.IMREAD_COLOR)
    if image is None:
        raise ImageDecodeError(path_obj)

    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def write_image(path: PathLike,
                image: np.ndarray,
                params: Optional[Sequence[int]] = None) -> bool:
    """
    Unicodeパス対応で画像を保存する（BGR配列をそのまま書き込む）。

    OpenCVの `cv2.imwrite` は環境によりUnicodeパスで失敗するため、
    `cv2.imencode` + `numpy.ndarray.tofile` で保存する。
    """
    try:
        path_obj = Path(path)
        ext = path_obj.suffix.lower()
        if not ext:
            logger.warning(f"画像保存失敗: 拡張子がありません ({path_obj})")
            return False

        ok, encoded = cv2.imencode(ext, image, list(params or []))
        if not ok:
            logger.warning(f"画像エンコード失敗: {path_obj}")
            return False

        encoded.tofile(str(path_obj))
        return True
    except (cv2.error, OSError) as e:
        logger.warning(f"画像保存失敗 ({path}): {e}")
        return False


def write_rgb_image(path: PathLike,
                    image: np.ndarray,
                    params: Optional[Sequence[int]] = None) -> bool:
    """RGB配列をBGRに変換して保存する。"""
    return write_image(path, cv2.cvtColor(image, cv2.COLOR_RGB2BGR), params)


def encode_params(fmt: str, jpeg_quality: int) -> List[int]:
    """出力フォーマットに応じたエンコードパラメータ"""
    if fmt in ("jpg", "jpeg"):
        return [cv2.IMWRITE_JPEG_QUALITY, int(jpeg_quality)]
    return []
