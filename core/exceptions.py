"""
カスタム例外クラス - pano2pinhole用

設定エラー、ファイルシステムエラー、画像デコードエラーを
明示的に区別するための例外クラス群。
幾何学的な縮退（ゼロベクトル、カメラ背面のサンプル）は例外にせず、
再投影処理の中で背景色（黒）として扱う。
"""

from pathlib import Path
from typing import Iterable, Optional


class PanoConverterError(Exception):
    """pano2pinhole の全例外の基底クラス"""


class ConfigurationError(PanoConverterError):
    """
    設定エラー

    解像度・カメラ数・視野角などのパラメータが不正な場合に送出される。
    処理開始前に検出され、プロセスは失敗ステータスで終了する。

    Attributes:
    -----------
    parameter : str
        不正なパラメータ名
    value : object
        指定された値
    """

    def __init__(self, message: str, parameter: str = "", value=None):
        self.parameter = parameter
        self.value = value
        if parameter:
            message = f"{message} ({parameter}={value!r})"
        super().__init__(message)


class OutputDirectoryError(PanoConverterError):
    """
    出力ディレクトリ作成失敗エラー

    Attributes:
    -----------
    path : Path
        作成できなかったディレクトリ
    """

    def __init__(self, path, reason: str = ""):
        self.path = Path(path)
        detail = f": {reason}" if reason else ""
        super().__init__(f"出力ディレクトリを作成できません: {self.path}{detail}")


class NoInputImagesError(PanoConverterError):
    """
    入力画像なしエラー

    入力ディレクトリに対応拡張子の画像が1枚も存在しない場合に送出される。

    Attributes:
    -----------
    path : Path
        入力ディレクトリ
    extensions : tuple
        検索した拡張子
    """

    def __init__(self, path, extensions: Optional[Iterable[str]] = None):
        self.path = Path(path)
        self.extensions = tuple(extensions or ())
        super().__init__(
            f"入力ディレクトリに画像が見つかりません: {self.path} "
            f"(拡張子: {', '.join(self.extensions)})"
        )


class ImageDecodeError(PanoConverterError):
    """
    画像デコードエラー

    バッチ処理では致命的ではなく、該当画像をスキップして続行する。
    """

    def __init__(self, path, reason: str = "デコード失敗"):
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"画像を読み込めません: {self.path} ({reason})")


class UnsupportedImageSizeError(PanoConverterError):
    """
    画像サイズ超過エラー

    cv2.remap() が扱えないサイズのパノラマを再投影しようとした場合に送出される。
    バッチ処理ではデコードエラーと同様に該当画像をスキップする。

    Attributes:
    -----------
    shape : tuple
        (height, width)
    limit : int
        一辺の上限（この値未満のみ対応）
    """

    def __init__(self, shape, limit: int):
        self.shape = tuple(shape)
        self.limit = limit
        super().__init__(
            f"画像サイズが大きすぎます: {self.shape[1]}x{self.shape[0]} "
            f"(一辺 {limit} 未満のみ対応)"
        )
