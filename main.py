# -*- coding: utf-8 -*-
import argparse
import os
import sys
import time
import traceback

import cv2
import moderngl
import pygame

from app_config import Config
from gesture import GestureSignal
from particle_morph import MorphEngine, MorphParams
from particle_renderer import Camera, PointCloudRenderer, Starfield, parse_hex_color, rotation_matrix
from particle_shapes import PARTICLE_COUNT, ShapeCache, ShapeKind

SHADER_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'shaders')
PREVIEW_WINDOW = 'Hand Tracking View'
DEFAULT_PALETTE = ['#00ffff', '#ff00ff', '#ffff00', '#ff4444', '#44ff44', '#ffffff']

SHAPE_KEYS = {
    pygame.K_1: ShapeKind.GALAXY,
    pygame.K_2: ShapeKind.HEART,
    pygame.K_3: ShapeKind.FLOWER,
    pygame.K_4: ShapeKind.SATURN,
    pygame.K_5: ShapeKind.FIREWORKS,
    pygame.K_6: ShapeKind.SPHERE,
}


class App:
    def __init__(self, config):
        self.config = config
        self.running = True
        self.fullscreen = self.config.get('display', 'fullscreen', default=False)
        self.fps = self.config.get('display', 'fps', default=60)

        self.palette = self.config.get('art', 'palette', default=DEFAULT_PALETTE) or DEFAULT_PALETTE
        self.color_hex = self.config.get('art', 'color', default=self.palette[0])
        self.color = parse_hex_color(self.color_hex)
        self.shape = ShapeKind.parse(self.config.get('art', 'shape', default=ShapeKind.GALAXY.value))

        self._init_pygame()
        self._init_moderngl()

        count = self.config.get('particles', 'count', default=PARTICLE_COUNT)
        self.shape_cache = ShapeCache(count)
        self.engine = MorphEngine.for_cache(self.shape_cache, self.shape, params=MorphParams.from_config(config))

        self.camera = Camera(config, *self.screen_size)
        self.point_cloud = PointCloudRenderer(config, self.ctx, self.shape_cache.count)
        self.point_cloud.set_program(self.particle_program)
        self.starfield = Starfield(config, self.ctx)
        self.starfield.set_program(self.star_program)

        self.tracker = self._init_hand_tracker()

        self.clock = pygame.time.Clock()
        self.last_time = time.time()

    def _init_pygame(self):
        pygame.init()
        display_index = self.config.get('display', 'display_index', default=0)
        try:
            displays = pygame.display.get_desktop_sizes()
            if display_index >= len(displays):
                print(f"[警告] ディスプレイ {display_index} が見つかりません。プライマリを使用します。")
                display_index = 0
        except pygame.error:
            print("[警告] ディスプレイサイズの取得に失敗しました。デフォルト設定を使用します。")
            displays = [(self.config.get('display', 'default_width'), self.config.get('display', 'default_height'))]
            display_index = 0
        if self.fullscreen:
            self.screen_size = displays[display_index]
            flags = pygame.OPENGL | pygame.DOUBLEBUF | pygame.FULLSCREEN
        else:
            self.screen_size = (self.config.get('display', 'default_width', default=1280),
                                self.config.get('display', 'default_height', default=720))
            flags = pygame.OPENGL | pygame.DOUBLEBUF
        pygame.display.set_mode(self.screen_size, flags, display=display_index)
        pygame.display.set_caption("GestureFlow")
        print(f"Pygameウィンドウサイズ: {self.screen_size[0]}x{self.screen_size[1]}")

    def _init_moderngl(self):
        self.ctx = moderngl.create_context()
        self.ctx.enable(moderngl.BLEND | moderngl.PROGRAM_POINT_SIZE)
        self.ctx.blend_func = moderngl.SRC_ALPHA, moderngl.ONE_MINUS_SRC_ALPHA
        self.ctx.viewport = (0, 0, *self.screen_size)
        self.particle_program = self.ctx.program(
            vertex_shader=self._load_shader('particle.vert'),
            fragment_shader=self._load_shader('particle.frag')
        )
        self.star_program = self.ctx.program(
            vertex_shader=self._load_shader('star.vert'),
            fragment_shader=self._load_shader('star.frag')
        )

    def _load_shader(self, name):
        path = os.path.join(SHADER_DIR, name)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return f.read()
        except FileNotFoundError:
            print(f"[エラー] シェーダーファイルが見つかりません: {path}")
            sys.exit(1)

    def _init_hand_tracker(self):
        if not self.config.get('hand_tracking', 'enabled', default=True):
            print("ハンドトラッキングは無効です。待機アニメーションのみで動作します。")
            return None
        # mediapipeの読み込みはここまで遅らせる
        from hand_tracker import HandTracker
        try:
            tracker = HandTracker(self.config)
        except RuntimeError as e:
            print(f"[警告] {e} 待機アニメーションのみで動作します。")
            return None
        tracker.start()
        if tracker.show_preview:
            cv2.namedWindow(PREVIEW_WINDOW, cv2.WINDOW_NORMAL)
        return tracker

    def select_shape(self, shape):
        # バッファはリセットしない。次のtickから新しい目標へモーフする
        self.shape = ShapeKind.parse(shape)
        print(f"形状を切り替えました: {self.shape.value}")

    def cycle_color(self):
        index = self.palette.index(self.color_hex) if self.color_hex in self.palette else -1
        self.color_hex = self.palette[(index + 1) % len(self.palette)]
        self.color = parse_hex_color(self.color_hex)
        print(f"色を切り替えました: {self.color_hex}")

    def _toggle_preview(self):
        if self.tracker is None:
            return
        if self.tracker.toggle_preview():
            cv2.namedWindow(PREVIEW_WINDOW, cv2.WINDOW_NORMAL)
        else:
            cv2.destroyWindow(PREVIEW_WINDOW)

    def _toggle_fullscreen(self):
        try:
            switched = pygame.display.toggle_fullscreen()
        except pygame.error as e:
            print(f"[警告] ディスプレイモードを切り替えられませんでした: {e}")
            return
        if not switched:
            print("[警告] このディスプレイではモードを切り替えられません。")
            return
        self.fullscreen = not self.fullscreen
        self.screen_size = pygame.display.get_surface().get_size()
        self.ctx.viewport = (0, 0, *self.screen_size)
        self.camera.update_aspect_ratio(*self.screen_size)
        print(f"ディスプレイモードを切り替えました: {'フルスクリーン' if self.fullscreen else 'ウィンドウ'}")

    def _handle_events(self):
        for event in pygame.event.get():
            if event.type == pygame.QUIT or (event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE):
                self.running = False
            if event.type == pygame.KEYDOWN:
                if event.key in SHAPE_KEYS: self.select_shape(SHAPE_KEYS[event.key])
                if event.key == pygame.K_c: self.cycle_color()
                if event.key == pygame.K_h: self._toggle_preview()
                if event.key == pygame.K_F11: self._toggle_fullscreen()

    def _show_preview(self):
        if self.tracker is None or not self.tracker.show_preview:
            return
        frame = self.tracker.poll_preview()
        if frame is not None:
            cv2.imshow(PREVIEW_WINDOW, frame)
        if cv2.waitKey(1) & 0xFF == 27:
            self.running = False

    def run(self):
        background = self.config.get('art', 'background', default=[0.02, 0.02, 0.02])
        while self.running:
            self._handle_events()
            self._show_preview()

            current_time = time.time()
            dt = current_time - self.last_time
            self.last_time = current_time

            gesture = self.tracker.poll() if self.tracker is not None else GestureSignal.idle()
            target = self.shape_cache.get(self.shape)
            rotation = self.engine.tick(target, gesture, dt)
            self.starfield.update(dt)

            # tick完了後にバッファを転送する
            self.point_cloud.upload(self.engine.positions)
            self.ctx.clear(*background, 1.0)
            self.starfield.render(self.camera)
            self.point_cloud.render(self.camera, rotation_matrix(rotation), self.color)
            pygame.display.flip()
            self.clock.tick(self.fps)
        self.cleanup()

    def cleanup(self):
        print("クリーンアップ処理を実行中...")
        self.running = False
        if self.tracker is not None:
            self.tracker.stop()
        cv2.destroyAllWindows()
        pygame.quit()
        print("クリーンアップ完了。")


def main(argv=None):
    parser = argparse.ArgumentParser(description="ハンドジェスチャーで操作するパーティクルモーフ")
    parser.add_argument('--config', default='config.json', help="設定ファイルのパス")
    args = parser.parse_args(argv)
    try:
        app = App(Config(args.config))
        app.run()
    except Exception as e:
        print(f"アプリケーションの実行中に致命的なエラーが発生しました: {e}")
        traceback.print_exc()
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
