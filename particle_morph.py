# -*- coding: utf-8 -*-
"""パーティクルのモーフ（毎フレームの更新処理）

ライブバッファを目標形状（スケール・揺らぎ・回転つき）へ毎フレーム補間する。
形状を切り替えてもバッファはリセットせず、次のフレームから新しい目標へ
引き寄せるだけなので、切り替えは連続的なモーフとして見える。
"""
import math
from dataclasses import dataclass, field, fields

import numpy as np

from gesture import GestureSignal


@dataclass
class MorphParams:
    """モーフの調整用定数（config.jsonの'morph'セクションで上書き可能）"""
    morph_lerp: float = 0.1
    tilt_lerp: float = 0.1
    hand_scale_base: float = 0.5
    hand_scale_range: float = 2.5
    idle_scale_base: float = 1.5
    idle_scale_amplitude: float = 0.5
    idle_scale_frequency: float = 0.8
    hand_rotation_speed: float = 0.05
    idle_rotation_speed: float = 0.1
    idle_float_frequency: float = 0.2
    idle_float_amplitude: float = 0.1
    jitter_gain: float = 0.1
    idle_jitter: float = 0.02

    @classmethod
    def from_config(cls, config):
        known = {f.name for f in fields(cls)}
        overrides = {}
        for key, value in config.section('morph').items():
            if key not in known:
                print(f"[警告] morph セクションの未知のキーを無視します: {key}")
                continue
            overrides[key] = float(value)
        return cls(**overrides)


@dataclass
class Rotation:
    """点群全体に適用する回転角（ラジアン）"""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def as_tuple(self):
        return (self.x, self.y, self.z)


@dataclass
class MorphState:
    positions: np.ndarray
    target: np.ndarray
    rotation: Rotation = field(default_factory=Rotation)
    elapsed: float = 0.0


def _lerp(a, b, t):
    return a + (b - a) * t


def scale_for(gesture, elapsed, params=None):
    """手の開き具合（検出時）または呼吸アニメーション（待機時）から拡大率を求める"""
    params = params or MorphParams()
    if gesture.detected:
        return params.hand_scale_base + gesture.openness * params.hand_scale_range
    return params.idle_scale_base + math.sin(elapsed * params.idle_scale_frequency) * params.idle_scale_amplitude


def jitter_for(gesture, params=None):
    params = params or MorphParams()
    if gesture.detected:
        return gesture.openness * params.jitter_gain
    return params.idle_jitter


class MorphEngine:
    """ライブバッファと回転状態を所有し、毎フレーム更新するクラス

    tick() は描画ループから1フレームに1回だけ呼ぶ。バッファへの書き込みは
    このクラスのみが行い、描画側は tick() 完了後に positions を読む。
    """
    def __init__(self, initial_target, count=None, params=None, rng=None):
        target = np.asarray(initial_target, dtype=np.float32)
        if target.ndim != 1 or target.size == 0 or target.size % 3 != 0:
            raise ValueError(f"目標座標は長さ3Nの1次元配列である必要があります: shape={target.shape}")
        if count is not None and target.size != count * 3:
            raise ValueError(f"バッファサイズが一致しません: {target.size} != 3 * {count}")
        self.params = params or MorphParams()
        self.rng = rng if rng is not None else np.random.default_rng()
        # 初回フレームで「爆発」しないよう、ライブバッファは目標と同じ値で始める
        self.state = MorphState(positions=target.copy(), target=target)
        self._scaled = np.empty_like(self.state.positions)

    @classmethod
    def for_cache(cls, cache, shape, params=None, rng=None):
        """ShapeCacheと同じパーティクル数でエンジンを生成する"""
        return cls(cache.get(shape), count=cache.count, params=params, rng=rng)

    @property
    def count(self):
        return self.state.positions.size // 3

    @property
    def positions(self):
        return self.state.positions

    @property
    def rotation(self):
        return self.state.rotation

    @property
    def elapsed(self):
        return self.state.elapsed

    def tick(self, target, gesture, dt):
        params = self.params
        state = self.state
        gesture = (gesture if gesture is not None else GestureSignal.idle()).sanitized()
        if not math.isfinite(dt) or dt < 0.0:
            dt = 0.0

        state.elapsed += dt
        state.target = target

        # 1. 拡大率
        scale = scale_for(gesture, state.elapsed, params)

        # 2, 3. 点群全体の回転（Y軸は累積、X/Z軸は手の位置で傾ける）
        rotation = state.rotation
        rotation_speed = params.hand_rotation_speed if gesture.detected else params.idle_rotation_speed
        rotation.y += dt * rotation_speed
        if gesture.detected:
            hand_x, hand_y = gesture.position
            rotation.x = _lerp(rotation.x, hand_y - 0.5, params.tilt_lerp)
            rotation.z = _lerp(rotation.z, -(hand_x - 0.5), params.tilt_lerp)
        else:
            rotation.x = math.sin(state.elapsed * params.idle_float_frequency) * params.idle_float_amplitude

        # 4. 各パーティクルを拡大済みの目標へ補間し、その後に揺らぎを加える
        # 補間係数はdtに依存しない（収束速度はフレームレート依存）
        positions = state.positions
        np.multiply(target, scale, out=self._scaled)
        positions += (self._scaled - positions) * params.morph_lerp
        jitter = jitter_for(gesture, params)
        if jitter > 0.0:
            positions += (self.rng.random(positions.size) - 0.5) * jitter
        return rotation
