"""
ロギングユーティリティ - pano2pinhole用

アプリケーション全体で統一されたロギングを提供する。
ルートロガー 'pano2pinhole' の下に階層的な子ロガーを配置し、
コンソール（カラー）とファイル（ローテーション）への出力を制御する。

使い方:
    # 各モジュールの冒頭で
    from utils.logger import get_logger
    logger = get_logger(__name__)

    logger.debug("詳細デバッグ情報")
    logger.info("通常の処理情報")
    logger.warning("注意が必要な状況")
    logger.error("エラーが発生")
"""

import logging
import logging.handlers
import sys
from pathlib import Path

# アプリケーションのルートロガー名
ROOT_LOGGER_NAME = 'pano2pinhole'

# ログローテーション設定
MAX_LOG_BYTES = 5 * 1024 * 1024   # 5MB
BACKUP_COUNT = 3                   # 3世代保持


class ColoredFormatter(logging.Formatter):
    """カラー出力をサポートするフォーマッター"""

    COLORS = {
        'DEBUG': '\033[36m',      # シアン
        'INFO': '\033[32m',       # 緑
        'WARNING': '\033[33m',    # 黄
        'ERROR': '\033[31m',      # 赤
        'CRITICAL': '\033[35m',   # マゼンタ
    }
    RESET = '\033[0m'

    def format(self, record):
        """ログレコードをフォーマット"""
        levelname = record.levelname
        color = self.COLORS.get(levelname, self.RESET)
        record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            # 後続ハンドラ（ファイル）にエスケープシーケンスを残さない
            record.levelname = levelname


def _short_name(name: str) -> str:
    """モジュール名を短縮表示用に変換する。

    例: 'pano2pinhole.processing.batch' -> 'processing.batch'
         '__main__'                     -> 'main'
    """
    if name == '__main__':
        return 'main'
    prefix = ROOT_LOGGER_NAME + '.'
    if name.startswith(prefix):
        return name[len(prefix):]
    return name


class _ShortNameFormatter(logging.Formatter):
    """モジュール名を短縮表示するフォーマッター"""

    def format(self, record):
        record.shortname = _short_name(record.name)
        return super().format(record)


class _ColoredShortNameFormatter(ColoredFormatter):
    """カラー＋モジュール名短縮フォーマッター"""

    def format(self, record):
        record.shortname = _short_name(record.name)
        return super().format(record)


# 日時 | レベル | モジュール | 本文
LOG_FORMAT = '%(levelname)s | %(asctime)s | %(shortname)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def _console_handler(level: int, use_color: bool) -> logging.Handler:
    formatter_cls = _ColoredShortNameFormatter if use_color else _ShortNameFormatter
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter_cls(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _file_handler(log_file) -> logging.Handler:
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=BACKUP_COUNT,
        encoding='utf-8',
    )
    # ファイルには全レベルを記録する
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(_ShortNameFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logger(log_file=None, level=logging.INFO, use_color=True):
    """
    変換実行ごとにルートロガー 'pano2pinhole' を構成する。

    同一プロセスで複数回呼ばれても（テストや main() の連続実行）
    ハンドラは重複しない。呼ぶたびにコンソールを現在の sys.stdout に、
    ファイルを今回のログファイルに付け替え、前回分は閉じる。

    Parameters:
    -----------
    log_file : str or Path, optional
        ログファイルパス。None ならコンソールのみ
    level : int
        コンソールのログレベル
    use_color : bool
        コンソール出力でカラーを使用するか

    Returns:
    --------
    logging.Logger
        設定済みルートロガー
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG if log_file else level)
    root.propagate = False

    # 前回の実行で付けたハンドラ（コンソール・ファイル）を外す
    for handler in list(root.handlers):
        if isinstance(handler, logging.StreamHandler):
            root.removeHandler(handler)
            handler.close()

    root.addHandler(_console_handler(level, use_color))
    if log_file:
        root.addHandler(_file_handler(log_file))
    return root


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    モジュール用ロガーを取得する。

    ルートロガー 'pano2pinhole' の子ロガーを返す。
    例: get_logger('processing.batch')
        → logging.getLogger('pano2pinhole.processing.batch')

    Parameters:
    -----------
    name : str
        モジュール名（通常 __name__ を渡す）

    Returns:
    --------
    logging.Logger
        ルートロガーの子ロガー
    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + '.'):
        # 既にルートロガー名が含まれている場合はそのまま
        return logging.getLogger(name)
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')
