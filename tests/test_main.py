from types import SimpleNamespace

import pygame

from main import App


class FakeCamera:
    def __init__(self) -> None:
        self.size = None

    def update_aspect_ratio(self, width, height) -> None:
        self.size = (width, height)


def _app():
    """ウィンドウやGLコンテキストを作らずに必要な属性だけを持つApp"""
    app = App.__new__(App)
    app.fullscreen = False
    app.screen_size = (1280, 720)
    app.ctx = SimpleNamespace(viewport=(0, 0, 1280, 720))
    app.camera = FakeCamera()
    return app


def test_fullscreen_error_keeps_window_mode(monkeypatch, capsys) -> None:
    def fail():
        raise pygame.error('not supported')

    monkeypatch.setattr(pygame.display, 'toggle_fullscreen', fail)
    app = _app()

    app._toggle_fullscreen()

    assert app.fullscreen is False
    assert app.camera.size is None
    assert '[警告]' in capsys.readouterr().out


def test_fullscreen_refusal_keeps_window_mode(monkeypatch, capsys) -> None:
    monkeypatch.setattr(pygame.display, 'toggle_fullscreen', lambda: 0)
    app = _app()

    app._toggle_fullscreen()

    assert app.fullscreen is False
    assert '[警告]' in capsys.readouterr().out


def test_fullscreen_switch_updates_viewport(monkeypatch) -> None:
    monkeypatch.setattr(pygame.display, 'toggle_fullscreen', lambda: 1)
    monkeypatch.setattr(pygame.display, 'get_surface', lambda: SimpleNamespace(get_size=lambda: (1920, 1080)))
    app = _app()

    app._toggle_fullscreen()

    assert app.fullscreen is True
    assert app.ctx.viewport == (0, 0, 1920, 1080)
    assert app.camera.size == (1920, 1080)
