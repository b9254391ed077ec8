# -*- coding: utf-8 -*-
import math
from dataclasses import dataclass, field

import numpy as np

WRIST_INDEX = 0
PALM_CENTER_INDEX = 9  # 中指の付け根
FINGERTIP_INDICES = (4, 8, 12, 16, 20)

# 経験的な値：握りこぶしで約0.15、開いた手のひらで0.35〜0.4
DEFAULT_OPEN_MIN = 0.15
DEFAULT_OPEN_MAX = 0.45


def _clamp(value, low, high, fallback):
    try:
        value = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(value):
        return fallback
    return max(low, min(high, value))


@dataclass(frozen=True)
class GestureSignal:
    """1フレーム分の手の状態（外部から受け取るスナップショット）"""
    detected: bool = False
    openness: float = 0.0
    position: tuple = field(default=(0.5, 0.5))

    @classmethod
    def idle(cls):
        return cls(False, 0.0, (0.5, 0.5))

    def sanitized(self):
        """範囲外やNaNの値を丸めたコピーを返す"""
        try:
            x, y = self.position
        except (TypeError, ValueError):
            x, y = 0.5, 0.5
        return GestureSignal(
            bool(self.detected),
            _clamp(self.openness, 0.0, 1.0, 0.0),
            (_clamp(x, 0.0, 1.0, 0.5), _clamp(y, 0.0, 1.0, 0.5)),
        )


def _landmark_to_array(landmark):
    """ランドマークをnumpy配列に変換"""
    if hasattr(landmark, 'x'):
        return np.array([landmark.x, landmark.y, getattr(landmark, 'z', 0.0)], dtype=np.float32)
    values = list(landmark)[:3]
    while len(values) < 3:
        values.append(0.0)
    return np.array(values, dtype=np.float32)


def openness_from_landmarks(landmarks, open_min=DEFAULT_OPEN_MIN, open_max=DEFAULT_OPEN_MAX):
    """手首から5本の指先までの平均距離を 0(握る)〜1(開く) に正規化する"""
    wrist = _landmark_to_array(landmarks[WRIST_INDEX])
    distances = [np.linalg.norm(_landmark_to_array(landmarks[i]) - wrist) for i in FINGERTIP_INDICES]
    avg_distance = float(np.mean(distances))
    if open_max <= open_min:
        return 0.0
    openness = (avg_distance - open_min) / (open_max - open_min)
    return _clamp(openness, 0.0, 1.0, 0.0)


def position_from_landmarks(landmarks):
    """手のひら中心の位置。Xはミラー、Yは3D用に上下反転"""
    palm = _landmark_to_array(landmarks[PALM_CENTER_INDEX])
    return (1.0 - float(palm[0]), 1.0 - float(palm[1]))


def gesture_from_landmarks(landmarks, open_min=DEFAULT_OPEN_MIN, open_max=DEFAULT_OPEN_MAX):
    if landmarks is None or len(landmarks) <= max(FINGERTIP_INDICES):
        return GestureSignal.idle()
    return GestureSignal(
        True,
        openness_from_landmarks(landmarks, open_min, open_max),
        position_from_landmarks(landmarks),
    ).sanitized()
