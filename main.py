#!/usr/bin/env python3
"""
pano2pinhole - 球面パノラマ → ピンホール画像変換
メインエントリポイント

360x180度のEquirectangularパノラマから、鉛直軸周りに回転した
N台の仮想ピンホールカメラの画像を切り出す。

Usage:
    python main.py -i panos/ -o out/                   # 5カメラ、FoV 60度、1024px
    python main.py -i panos/ -o out/ -n 4 -f 90        # キューブ側面4枚相当
    python main.py -i panos/ -o out/ -D                # SVGでリグ構成を確認
    python main.py --config run.json -r 2048           # 設定ファイル + CLI上書き
    python main.py --help                              # ヘルプ表示
"""

import sys
import argparse
import logging
from pathlib import Path
from typing import Optional, Sequence

from config import ConverterConfig, DEMO_SVG_NAME, INTERPOLATION_METHODS, OUTPUT_FORMATS
from core.camera_models import compute_cubic_camera_intrinsics, intrinsic_spherical
from core.camera_rig import CameraRig
from core.exceptions import ConfigurationError, PanoConverterError
from utils.logger import setup_logger, get_logger

logger = get_logger(__name__)


def parse_arguments(argv: Optional[Sequence[str]] = None):
    """コマンドライン引数を解析する。"""
    parser = argparse.ArgumentParser(
        prog="pano2pinhole",
        description="球面パノラマ画像を複数のピンホール（透視投影）画像に変換する",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
使用例:
  python main.py -i panos/ -o out/                   既定設定で変換
  python main.py -i panos/ -o out/ -n 8 -f 75        8カメラ、FoV 75度
  python main.py -i panos/ -o out/ -r 2048           出力解像度 2048px
  python main.py -i panos/ -o out/ -D                リグ構成をSVGで出力（画像変換なし）
  python main.py -i panos/ -o out/ --config conf.json 設定ファイル指定
        """
    )

    # 必須（設定ファイルで指定することも可能）
    parser.add_argument("-i", "--input_dir", type=str, default=None,
                        help="球面パノラマ画像のディレクトリ")
    parser.add_argument("-o", "--output_dir", type=str, default=None,
                        help="ピンホール画像の出力ディレクトリ")

    # オプション
    parser.add_argument("-r", "--image_resolution", type=int, default=None,
                        help="ピンホール画像のサイズ（デフォルト: 1024）")
    parser.add_argument("-n", "--nb_split", type=int, default=None,
                        help="X軸方向に並べるピンホール画像の枚数（デフォルト: 5）")
    parser.add_argument("-f", "--fov", type=float, default=None,
                        help="ピンホールカメラの視野角（度、デフォルト: 60）")
    parser.add_argument("-D", "--demo_mode", action="store_true", default=False,
                        help="指定したリグ構成を球面画像上でシミュレートしたSVGを出力する")

    parser.add_argument("--config", type=str, default=None,
                        help="設定ファイルパス（JSON形式）")
    parser.add_argument("--save-config", type=str, default=None,
                        help="マージ後の設定をJSONに保存する（再実行用）")
    parser.add_argument("--format", type=str, choices=list(OUTPUT_FORMATS), default=None,
                        help="出力画像フォーマット（デフォルト: jpg）")
    parser.add_argument("--jpeg-quality", type=int, default=None,
                        help="JPEG品質（0-100、デフォルト: 95）")
    parser.add_argument("--interpolation", type=str, choices=list(INTERPOLATION_METHODS), default=None,
                        help="補間方法（デフォルト: bilinear）")
    parser.add_argument("--workers", type=int, default=None,
                        help="カメラ単位の並列スレッド数（デフォルト: CPUコア数）")
    parser.add_argument("--pano-width", type=int, default=None,
                        help="デモモードの参照パノラマ幅（デフォルト: 4096）")

    parser.add_argument("--log-file", type=str, default=None,
                        help="ログファイルパス（指定時のみファイル出力）")
    parser.add_argument("--verbose", "-v", action="store_true", default=False,
                        help="詳細ログ出力")

    return parser.parse_args(argv)


def load_config(config_path: str = None) -> ConverterConfig:
    """
    設定をロードする。

    設定ファイル → デフォルト の優先順位でマージします。

    Parameters:
    -----------
    config_path : str, optional
        設定ファイルパス（JSON形式）

    Returns:
    --------
    ConverterConfig
    """
    if not config_path:
        return ConverterConfig()

    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError("設定ファイルが見つかりません", parameter="config", value=config_path)

    try:
        config = ConverterConfig.load(path)
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"設定ファイルの読み込みに失敗: {e}",
                                 parameter="config", value=config_path) from e
    logger.info(f"設定ファイルを読み込みました: {config_path}")
    return config


def apply_cli_overrides(config: ConverterConfig, args) -> None:
    """CLI引数で設定を上書きする。"""
    if args.input_dir is not None:
        config.input_dir = args.input_dir
    if args.output_dir is not None:
        config.output_dir = args.output_dir
    if args.image_resolution is not None:
        config.image_resolution = args.image_resolution
    if args.nb_split is not None:
        config.nb_split = args.nb_split
    if args.fov is not None:
        config.fov = args.fov
    if args.demo_mode:
        config.demo_mode = True
    if args.format:
        config.output_image_format = args.format
    if args.jpeg_quality is not None:
        config.output_jpeg_quality = args.jpeg_quality
    if args.interpolation:
        config.interpolation = args.interpolation
    if args.workers is not None:
        config.num_workers = args.workers
    if args.pano_width is not None:
        config.demo_pano_width = args.pano_width


def run_demo(config: ConverterConfig) -> Path:
    """デモモード: リグの画像境界を投影したSVGを出力する。"""
    from processing.batch import ensure_output_dir
    from processing.overlay import write_overlay

    output_dir = ensure_output_dir(config.output_dir)
    rig = CameraRig.ring(config.nb_split)
    pinhole = compute_cubic_camera_intrinsics(config.image_resolution, config.fov_radians)
    spherical = intrinsic_spherical(config.demo_pano_width, config.demo_pano_width // 2)

    return write_overlay(output_dir / DEMO_SVG_NAME, spherical, pinhole, rig,
                         steps=config.demo_border_steps)


def run_convert(config: ConverterConfig):
    """変換モード: 全パノラマを全仮想カメラについて変換する。"""
    from processing.batch import PanoramaBatchConverter

    _last_logged_pct = -1

    def progress_callback(current, total, message=""):
        nonlocal _last_logged_pct
        pct = int(current / total * 100) if total > 0 else 0
        # 10% 刻みでログ出力（大量出力を防止）
        if pct >= _last_logged_pct + 10 or pct == 100:
            _last_logged_pct = pct
            logger.info(f"進捗: {pct}% {message}")

    converter = PanoramaBatchConverter(config)
    return converter.run(config.input_dir, config.output_dir, progress_callback=progress_callback)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """メインエントリポイント。終了ステータスを返す。"""
    args = parse_arguments(argv)

    setup_logger(log_file=args.log_file,
                 level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = load_config(args.config)
        apply_cli_overrides(config, args)
        config.validate()
    except ConfigurationError as e:
        logger.error(f"設定エラー: {e}")
        return 1

    if args.save_config:
        try:
            config.save(args.save_config)
        except OSError as e:
            logger.error(f"設定ファイルを保存できません: {args.save_config} ({e})")
            return 1
        logger.info(f"設定を保存しました: {args.save_config}")

    logger.info("=" * 60)
    logger.info("pano2pinhole")
    logger.info("=" * 60)
    logger.info(f"入力:     {config.input_dir}")
    logger.info(f"出力先:   {config.output_dir}")
    logger.info(f"解像度:   {config.image_resolution}px, カメラ数: {config.nb_split}, "
                f"FoV: {config.fov:.1f}度")
    logger.info("-" * 60)

    try:
        if config.demo_mode:
            svg_path = run_demo(config)
            logger.info(f"完了: {svg_path}")
            return 0

        result = run_convert(config)
    except PanoConverterError as e:
        logger.error(str(e))
        return 1

    logger.info("-" * 60)
    logger.info(f"完了: {len(result.written)} 画像を出力しました")
    logger.info(f"焦点距離: {result.focal_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
