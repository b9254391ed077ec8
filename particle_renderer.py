# -*- coding: utf-8 -*-
import math

import moderngl
import numpy as np


def parse_hex_color(text):
    """'#rrggbb' 形式の色を 0〜1 のRGBに変換する。不正な値は白"""
    value = str(text).strip().lstrip('#')
    if len(value) == 3:
        value = ''.join(ch * 2 for ch in value)
    try:
        if len(value) != 6:
            raise ValueError(value)
        return tuple(int(value[i:i + 2], 16) / 255.0 for i in (0, 2, 4))
    except ValueError:
        print(f"[警告] 色の指定が不正です: '{text}'。白を使用します。")
        return (1.0, 1.0, 1.0)


def rotation_matrix(rotation):
    """点群全体のモデル行列（オイラー角XYZ順）"""
    x, y, z = rotation.as_tuple()
    cx, sx = math.cos(x), math.sin(x)
    cy, sy = math.cos(y), math.sin(y)
    cz, sz = math.cos(z), math.sin(z)
    rx = np.array([[1, 0, 0, 0], [0, cx, -sx, 0], [0, sx, cx, 0], [0, 0, 0, 1]], dtype='f4')
    ry = np.array([[cy, 0, sy, 0], [0, 1, 0, 0], [-sy, 0, cy, 0], [0, 0, 0, 1]], dtype='f4')
    rz = np.array([[cz, -sz, 0, 0], [sz, cz, 0, 0], [0, 0, 1, 0], [0, 0, 0, 1]], dtype='f4')
    return rx @ ry @ rz


def _to_gl(matrix):
    # GLSLは列優先なので転置して書き込む
    return np.ascontiguousarray(matrix.T, dtype='f4').tobytes()


class Camera:
    """3Dカメラと行列計算を管理するクラス"""
    def __init__(self, config, screen_width, screen_height):
        self.config = config
        self.eye = np.array(self.config.get('camera', 'eye', default=[0.0, 0.0, 15.0]), dtype=np.float32)
        self.target = np.array(self.config.get('camera', 'target', default=[0.0, 0.0, 0.0]), dtype=np.float32)
        self.up = np.array(self.config.get('camera', 'up', default=[0.0, 1.0, 0.0]), dtype=np.float32)
        self.fovy = self.config.get('camera', 'fovy', default=60.0)
        self.near = self.config.get('camera', 'near_plane', default=0.1)
        self.far = self.config.get('camera', 'far_plane', default=400.0)
        self.update_aspect_ratio(screen_width, screen_height)

    def update_aspect_ratio(self, screen_width, screen_height):
        self.screen_height = screen_height
        self.aspect_ratio = screen_width / screen_height

    def get_view_matrix(self):
        return self._look_at(self.eye, self.target, self.up)

    def get_projection_matrix(self):
        return self._perspective(self.fovy, self.aspect_ratio, self.near, self.far)

    def get_point_scale(self):
        """ワールド単位の点サイズをピクセルに換算する係数"""
        return self.screen_height / (2.0 * math.tan(math.radians(self.fovy) / 2.0))

    def _look_at(self, eye, target, up):
        f = target - eye
        f_norm = np.linalg.norm(f)
        if f_norm == 0: return np.eye(4, dtype='f4')
        f /= f_norm
        s = np.cross(f, up)
        s_norm = np.linalg.norm(s)
        if s_norm == 0: return np.eye(4, dtype='f4')
        s /= s_norm
        u = np.cross(s, f)
        m = np.eye(4, dtype='f4')
        m[0, :3], m[1, :3], m[2, :3] = s, u, -f
        m[:3, 3] = -s @ eye, -u @ eye, f @ eye
        return m

    def _perspective(self, fovy, aspect, near, far):
        f = 1.0 / np.tan(np.radians(fovy) / 2.0)
        m = np.zeros((4, 4), dtype='f4')
        m[0, 0] = f / aspect
        m[1, 1] = f
        m[2, 2] = (far + near) / (near - far)
        m[3, 2] = -1.0
        m[2, 3] = (2.0 * far * near) / (near - far)
        return m


class PointCloudRenderer:
    """モーフエンジンのライブバッファをGPUへ転送し、点として描画するクラス"""
    def __init__(self, config, ctx, count):
        self.config = config
        self.ctx = ctx
        self.count = count
        self.point_size = self.config.get('particles', 'size', default=0.15)
        self.opacity = self.config.get('particles', 'opacity', default=0.8)
        self.vbo = self.ctx.buffer(reserve=count * 3 * 4)
        self.program = None
        self.vao = None
        print(f"{self.count}個のパーティクル用バッファを確保しました。")

    def set_program(self, program):
        self.program = program
        self.vao = self.ctx.vertex_array(self.program, [(self.vbo, '3f', 'in_pos')])

    def upload(self, positions):
        self.vbo.write(np.ascontiguousarray(positions, dtype='f4').tobytes())

    def render(self, camera, model, color):
        if not (self.vao and self.program):
            return
        view = camera.get_view_matrix()
        mv = view @ model
        mvp = camera.get_projection_matrix() @ mv
        self.program['mvp'].write(_to_gl(mvp))
        self.program['mv'].write(_to_gl(mv))
        self.program['point_size'].value = self.point_size
        self.program['point_scale'].value = camera.get_point_scale()
        self.program['color'].value = tuple(color)
        self.program['opacity'].value = self.opacity
        # 加算合成・深度テストなし
        self.ctx.disable(moderngl.DEPTH_TEST)
        self.ctx.blend_func = moderngl.SRC_ALPHA, moderngl.ONE
        self.vao.render(mode=moderngl.POINTS, vertices=self.count)
        self.ctx.blend_func = moderngl.SRC_ALPHA, moderngl.ONE_MINUS_SRC_ALPHA


class Starfield:
    """背景の星空を管理・描画するクラス"""
    def __init__(self, config, ctx):
        self.config = config
        self.ctx = ctx
        self.star_count = self.config.get('starfield', 'star_count', default=2000)
        self.radius = self.config.get('starfield', 'radius', default=100.0)
        self.depth = self.config.get('starfield', 'depth', default=50.0)
        self.speed = self.config.get('starfield', 'rotation_speed', default=0.01)
        self.max_size = self.config.get('starfield', 'star_max_size', default=2.0)
        self.angle = 0.0

        directions = np.random.normal(0.0, 1.0, (self.star_count, 3))
        norms = np.linalg.norm(directions, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        distances = self.radius + np.random.uniform(0.0, self.depth, (self.star_count, 1))
        self.stars = np.zeros((self.star_count, 4), dtype='f4')
        self.stars[:, 0:3] = directions / norms * distances
        self.stars[:, 3] = np.random.uniform(0.2, 1.0, self.star_count)
        self.vbo = self.ctx.buffer(self.stars.tobytes())
        self.program = None
        self.vao = None
        print(f"{self.star_count}個の星を背景に生成しました。")

    def set_program(self, program):
        self.program = program
        self.vao = self.ctx.vertex_array(
            self.program,
            [(self.vbo, '3f 1f', 'in_vert', 'in_brightness')]
        )

    def update(self, dt):
        self.angle += self.speed * dt

    def render(self, camera):
        if self.vao and self.program:
            model = np.eye(4, dtype='f4')
            c, s = math.cos(self.angle), math.sin(self.angle)
            model[0, 0], model[0, 2], model[2, 0], model[2, 2] = c, s, -s, c
            mvp = camera.get_projection_matrix() @ camera.get_view_matrix() @ model
            self.program['mvp'].write(_to_gl(mvp))
            self.program['max_size'].value = self.max_size
            self.ctx.disable(moderngl.DEPTH_TEST)
            self.vao.render(mode=moderngl.POINTS)
