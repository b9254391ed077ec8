# -*- coding: utf-8 -*-
"""形状ごとのパーティクル目標座標を生成するモジュール

出力は常に長さ 3*N の float32 配列 (x, y, z を交互に格納)。
生成後は読み取り専用とし、ShapeCache とモーフエンジンで共有する。
"""
import operator
from enum import Enum

import numpy as np

PARTICLE_COUNT = 5000

# 惑星部分の割合 (Saturn)。先頭 30% のインデックスが惑星になる
SATURN_PLANET_RATIO_NUM = 3
SATURN_PLANET_RATIO_DEN = 10

_DEFAULT_RNG = np.random.default_rng()


class ShapeKind(str, Enum):
    """選択可能な形状の一覧"""
    GALAXY = 'Galaxy'
    HEART = 'Heart'
    FLOWER = 'Flower'
    SATURN = 'Saturn'
    FIREWORKS = 'Fireworks'
    SPHERE = 'Sphere'

    @classmethod
    def lookup(cls, value):
        """表示名・メンバー名から形状を解決する。見つからなければNone"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip()
            for kind in cls:
                if key == kind.value or key.upper() == kind.name:
                    return kind
        return None

    @classmethod
    def parse(cls, value):
        """lookupと同じだが、未知の値は Sphere にフォールバックする"""
        kind = cls.lookup(value)
        if kind is not None:
            return kind
        print(f"[警告] 未知の形状 '{value}' が指定されました。Sphere を使用します。")
        return cls.SPHERE


def check_count(count):
    """パーティクル数を検証して整数で返す"""
    try:
        count = operator.index(count)
    except TypeError:
        raise ValueError(f"パーティクル数は整数である必要があります: {count!r}") from None
    if count < 1:
        raise ValueError(f"パーティクル数は1以上である必要があります: {count}")
    return count


# =============================================================================
# 形状ごとの生成関数（いずれも (count, 3) の配列を返す）
# =============================================================================
def random_points_in_ball(count, radius, rng):
    """半径radiusの球内に体積一様で点を配置する"""
    theta = 2.0 * np.pi * rng.random(count)
    phi = np.arccos(2.0 * rng.random(count) - 1.0)
    # 立方根で半径方向の密度を体積一様にする（表面に偏らない）
    r = np.cbrt(rng.random(count)) * radius
    sin_phi = np.sin(phi)
    return np.stack([
        r * sin_phi * np.cos(theta),
        r * sin_phi * np.sin(theta),
        r * np.cos(phi),
    ], axis=1)


def _galaxy(count, rng):
    branches = 3
    radius = rng.random(count) * 5.0 + 0.5
    spin_angle = radius * 2.5
    branch_angle = (np.arange(count) % branches) * (2.0 * np.pi / branches)
    # 小さいオフセットに偏らせたランダムな揺らぎ（符号は五分五分）
    signs = np.where(rng.random((3, count)) < 0.5, 1.0, -1.0)
    jitter = np.power(rng.random((3, count)), 3) * signs * 0.5
    angle = branch_angle + spin_angle
    return np.stack([
        np.cos(angle) * radius + jitter[0],
        jitter[1] * 2.0,
        np.sin(angle) * radius + jitter[2],
    ], axis=1)


def _heart(count, rng):
    t = rng.random(count) * 2.0 * np.pi
    scale = 0.35
    hx = 16.0 * np.power(np.sin(t), 3)
    hy = 13.0 * np.cos(t) - 5.0 * np.cos(2 * t) - 2.0 * np.cos(3 * t) - np.cos(4 * t)
    volume = random_points_in_ball(count, 1.5, rng)
    return np.stack([
        (hx + volume[:, 0]) * scale,
        (hy + volume[:, 1]) * scale,
        (volume[:, 2] * 2.0) * scale,
    ], axis=1)


def _flower(count, rng):
    theta = rng.random(count) * 2.0 * np.pi
    petals = 4
    # rが負になる箇所で花びらが反転する（バラ曲線）
    r = np.cos(petals * theta)
    spread = rng.random(count) * 1.5
    return np.stack([
        r * np.cos(theta) * 4.0 * spread,
        r * np.sin(theta) * 4.0 * spread,
        (rng.random(count) - 0.5) * 2.0,
    ], axis=1)


def _saturn(count, rng):
    planet_count = count * SATURN_PLANET_RATIO_NUM // SATURN_PLANET_RATIO_DEN
    ring_count = count - planet_count
    planet = random_points_in_ball(planet_count, 2.2, rng)

    inner_r, outer_r = 3.0, 6.0
    r = inner_r + rng.random(ring_count) * (outer_r - inner_r)
    theta = rng.random(ring_count) * 2.0 * np.pi
    ring = np.stack([
        r * np.cos(theta),
        (rng.random(ring_count) - 0.5) * 0.2,  # 薄いリング
        r * np.sin(theta),
    ], axis=1)
    return np.concatenate([planet, ring], axis=0)


def _fireworks(count, rng):
    return random_points_in_ball(count, 6.0, rng)


def _sphere(count, rng):
    return random_points_in_ball(count, 4.0, rng)


_GENERATORS = {
    ShapeKind.GALAXY: _galaxy,
    ShapeKind.HEART: _heart,
    ShapeKind.FLOWER: _flower,
    ShapeKind.SATURN: _saturn,
    ShapeKind.FIREWORKS: _fireworks,
    ShapeKind.SPHERE: _sphere,
}


def generate_particles(shape, count=PARTICLE_COUNT, rng=None):
    """形状の目標座標を長さ 3*count の読み取り専用 float32 配列で返す"""
    count = check_count(count)
    kind = ShapeKind.parse(shape)
    generator = _GENERATORS.get(kind, _sphere)
    points = generator(count, rng if rng is not None else _DEFAULT_RNG)
    positions = np.ascontiguousarray(points, dtype=np.float32).reshape(-1)
    positions.flags.writeable = False
    return positions


class ShapeCache:
    """形状ごとに生成結果をメモ化するクラス

    同じ形状を選び直しても再生成せず、同一の配列インスタンスを返す。
    目標が毎フレーム変わるとモーフが収束しないため、キャッシュは必須。
    """
    def __init__(self, count=PARTICLE_COUNT, rng=None):
        self.count = check_count(count)
        self.rng = rng
        self._targets = {}

    def get(self, shape):
        kind = ShapeKind.parse(shape)
        target = self._targets.get(kind)
        if target is None:
            target = generate_particles(kind, self.count, self.rng)
            self._targets[kind] = target
        return target

    def clear(self):
        self._targets.clear()

    def __contains__(self, shape):
        return ShapeKind.lookup(shape) in self._targets

    def __len__(self):
        return len(self._targets)
