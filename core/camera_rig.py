"""
仮想カメラリグ生成モジュール

鉛直軸（Y軸）周りに等間隔に回転した N 台の仮想ピンホールカメラの
回転行列を生成する。リグは1回の実行で一度だけ構築し、全入力パノラマで
読み取り専用として共有する。
"""

import math
from dataclasses import dataclass
from typing import Iterator, List, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from core.exceptions import ConfigurationError


def rotation_around_y(angle: float) -> np.ndarray:
    """Y軸周りの回転行列（右手系、angle はラジアン）"""
    return Rotation.from_rotvec([0.0, angle, 0.0]).as_matrix()


def generate_camera_rotations(nb_split: int) -> List[np.ndarray]:
    """
    ヨー方向に等間隔な回転行列を生成する。

    i 番目の行列は i * (2pi / nb_split) だけY軸周りに回転する。

    Parameters:
    -----------
    nb_split : int
        仮想カメラ数（1以上）

    Returns:
    --------
    List[np.ndarray]
        3x3 回転行列のリスト
    """
    if isinstance(nb_split, bool) or not isinstance(nb_split, (int, np.integer)) or nb_split <= 0:
        raise ConfigurationError("カメラ数は1以上である必要があります",
                                 parameter="nb_split", value=nb_split)

    alpha = (2.0 * math.pi) / nb_split
    return [rotation_around_y(alpha * i) for i in range(nb_split)]


@dataclass(frozen=True)
class CameraRig:
    """
    読み取り専用の仮想カメラリグ

    Attributes:
    -----------
    rotations : Tuple[np.ndarray, ...]
        各カメラの回転行列（書き込み不可）
    yaw_step : float
        隣接カメラ間のヨー角（ラジアン）
    """
    rotations: Tuple[np.ndarray, ...]
    yaw_step: float

    @classmethod
    def ring(cls, nb_split: int) -> 'CameraRig':
        """水平リング状のリグを生成"""
        rotations = generate_camera_rotations(nb_split)
        for rotation in rotations:
            rotation.setflags(write=False)
        return cls(tuple(rotations), (2.0 * math.pi) / nb_split)

    def __len__(self) -> int:
        return len(self.rotations)

    def __iter__(self) -> Iterator[np.ndarray]:
        return iter(self.rotations)

    def __getitem__(self, index: int) -> np.ndarray:
        return self.rotations[index]

    def yaw_angles(self) -> List[float]:
        """各カメラのヨー角（ラジアン）"""
        return [self.yaw_step * i for i in range(len(self.rotations))]
