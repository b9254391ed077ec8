import math

import numpy as np
import pytest

from app_config import Config
from gesture import GestureSignal
from particle_morph import MorphEngine, MorphParams, jitter_for, scale_for
from particle_shapes import ShapeCache, ShapeKind, generate_particles

DT = 1.0 / 60.0


class ConstantRandom:
    """常に0.5を返す乱数源（揺らぎがちょうど0になる）"""
    def random(self, size=None):
        if size is None:
            return 0.5
        return np.full(size, 0.5)


def _hand(openness, x=0.5, y=0.5):
    return GestureSignal(True, openness, (x, y))


def test_engine_starts_at_initial_target() -> None:
    target = generate_particles(ShapeKind.SPHERE, 50, np.random.default_rng(0))
    engine = MorphEngine(target)

    assert engine.count == 50
    assert np.array_equal(engine.positions, target)
    assert engine.positions is not target
    assert engine.positions.flags.writeable
    assert engine.rotation.as_tuple() == (0.0, 0.0, 0.0)


def test_engine_rejects_malformed_buffers() -> None:
    with pytest.raises(ValueError):
        MorphEngine(np.zeros(10, dtype=np.float32))
    with pytest.raises(ValueError):
        MorphEngine(np.zeros((4, 3), dtype=np.float32))
    with pytest.raises(ValueError):
        MorphEngine(np.zeros(12, dtype=np.float32), count=5)


def test_for_cache_seeds_from_cached_target() -> None:
    cache = ShapeCache(20, np.random.default_rng(1))
    engine = MorphEngine.for_cache(cache, ShapeKind.SATURN)

    assert engine.count == 20
    assert np.array_equal(engine.positions, cache.get(ShapeKind.SATURN))


def test_scale_bounds() -> None:
    for openness in np.linspace(0.0, 1.0, 21):
        assert 0.5 <= scale_for(_hand(openness), 0.0) <= 3.0
    assert scale_for(_hand(0.0), 0.0) == pytest.approx(0.5)
    assert scale_for(_hand(1.0), 0.0) == pytest.approx(3.0)

    idle = GestureSignal.idle()
    for elapsed in np.linspace(0.0, 60.0, 601):
        assert 1.0 <= scale_for(idle, elapsed) <= 2.0
    assert scale_for(idle, math.pi / 2 / 0.8) == pytest.approx(2.0)


def test_jitter_magnitude() -> None:
    assert jitter_for(GestureSignal.idle()) == pytest.approx(0.02)
    assert jitter_for(_hand(0.5)) == pytest.approx(0.05)


def test_malformed_gesture_is_clamped() -> None:
    target = generate_particles(ShapeKind.SPHERE, 30, np.random.default_rng(2))
    engine = MorphEngine(target, rng=ConstantRandom())

    engine.tick(target, GestureSignal(True, 7.0, (0.5, 0.5)), DT)
    np.testing.assert_allclose(engine.positions, target + (target * 3.0 - target) * 0.1, atol=1e-5)

    engine.tick(target, GestureSignal(True, float('nan'), (float('inf'), -3.0)), DT)
    assert np.all(np.isfinite(engine.positions))
    assert all(math.isfinite(angle) for angle in engine.rotation.as_tuple())


def test_idle_rotation() -> None:
    target = generate_particles(ShapeKind.GALAXY, 10, np.random.default_rng(3))
    engine = MorphEngine(target)

    for _ in range(10):
        rotation = engine.tick(target, GestureSignal.idle(), DT)

    assert rotation is engine.rotation
    assert rotation.y == pytest.approx(10 * DT * 0.1)
    assert rotation.x == pytest.approx(math.sin(engine.elapsed * 0.2) * 0.1)
    assert rotation.z == 0.0


def test_hand_rotation_tilts_toward_position() -> None:
    target = generate_particles(ShapeKind.GALAXY, 10, np.random.default_rng(4))
    engine = MorphEngine(target)

    rotation = engine.tick(target, _hand(0.5, x=1.0, y=1.0), DT)
    assert rotation.y == pytest.approx(DT * 0.05)
    assert rotation.x == pytest.approx(0.05)
    assert rotation.z == pytest.approx(-0.05)

    for _ in range(200):
        engine.tick(target, _hand(0.5, x=1.0, y=1.0), DT)
    assert rotation.x == pytest.approx(0.5, abs=1e-6)
    assert rotation.z == pytest.approx(-0.5, abs=1e-6)


def test_idle_scenario_tracks_breathing_within_noise_band() -> None:
    target = generate_particles(ShapeKind.SPHERE, 4, np.random.default_rng(5))
    engine = MorphEngine(target, rng=np.random.default_rng(6))
    idle = GestureSignal.idle()

    # 揺らぎなしの参照軌道
    reference = target.astype(np.float64)
    # 揺らぎ(±0.01)は毎回0.9倍に減衰するので、誤差は 0.01/0.1 = 0.1 を超えない
    bound = 0.5 * 0.02 / 0.1 + 1e-4
    for k in range(1, 301):
        engine.tick(target, idle, DT)
        scale = scale_for(idle, k * DT)
        assert 1.0 <= scale <= 2.0
        reference += (target * scale - reference) * 0.1
        assert np.max(np.abs(engine.positions - reference)) <= bound
    assert engine.elapsed == pytest.approx(300 * DT)


def test_converges_to_scaled_target_when_scale_is_held() -> None:
    target = generate_particles(ShapeKind.HEART, 200, np.random.default_rng(7))
    engine = MorphEngine(target, rng=np.random.default_rng(8))
    hand = _hand(0.5)

    for _ in range(200):
        engine.tick(target, hand, DT)

    jitter = jitter_for(hand)
    error = np.abs(engine.positions - target * scale_for(hand, 0.0))
    assert error.max() <= 0.5 * jitter / 0.1 + 1e-4


def test_hand_expansion_follows_exponential_curve() -> None:
    target = generate_particles(ShapeKind.SPHERE, 100, np.random.default_rng(9))
    engine = MorphEngine(target, rng=ConstantRandom())
    hand = _hand(1.0)

    for k in range(1, 31):
        engine.tick(target, hand, DT)
        progress = 1.0 - 0.9 ** k
        expected = target * (1.0 + 2.0 * progress)
        np.testing.assert_allclose(engine.positions, expected, atol=1e-4)


def test_shape_switch_continues_from_current_buffer() -> None:
    cache = ShapeCache(500, np.random.default_rng(10))
    engine = MorphEngine.for_cache(cache, ShapeKind.SPHERE, rng=ConstantRandom())
    hand = _hand(0.0)
    buffer = engine.positions

    for _ in range(50):
        engine.tick(cache.get(ShapeKind.SPHERE), hand, DT)
    before = engine.positions.copy()

    new_target = cache.get(ShapeKind.GALAXY)
    engine.tick(new_target, hand, DT)
    scaled = new_target * scale_for(hand, 0.0)

    assert engine.positions is buffer
    assert engine.state.target is new_target
    step = engine.positions - before
    np.testing.assert_allclose(step, 0.1 * (scaled - before), atol=1e-5)
    assert np.max(np.abs(step)) <= 0.1 * np.max(np.abs(scaled - before)) + 1e-5


def test_negative_dt_is_ignored() -> None:
    target = generate_particles(ShapeKind.FLOWER, 10, np.random.default_rng(11))
    engine = MorphEngine(target)

    engine.tick(target, GestureSignal.idle(), -1.0)
    assert engine.elapsed == 0.0
    assert engine.rotation.y == 0.0


def test_params_from_config(capsys) -> None:
    config = Config.from_dict({'morph': {'morph_lerp': 0.2, 'idle_jitter': 0, 'bogus': 1}})
    params = MorphParams.from_config(config)

    assert params.morph_lerp == 0.2
    assert params.idle_jitter == 0.0
    assert params.tilt_lerp == 0.1
    assert 'bogus' in capsys.readouterr().out

    assert MorphParams.from_config(Config.from_dict({})) == MorphParams()
