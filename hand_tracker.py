# -*- coding: utf-8 -*-
import queue
import threading

import cv2
import mediapipe as mp

from gesture import DEFAULT_OPEN_MAX, DEFAULT_OPEN_MIN, GestureSignal, gesture_from_landmarks


class HandTracker:
    """カメラ映像から手を検出し、GestureSignalを別スレッドで発行するクラス"""
    def __init__(self, config):
        self.config = config
        self.running = False
        self.show_preview = self.config.get('hand_tracking', 'show_preview', default=True)
        self.open_min = self.config.get('hand_tracking', 'open_min', default=DEFAULT_OPEN_MIN)
        self.open_max = self.config.get('hand_tracking', 'open_max', default=DEFAULT_OPEN_MAX)
        self.latest = GestureSignal.idle()

        self.gesture_queue = queue.Queue(maxsize=2)
        self.video_queue = queue.Queue(maxsize=1)
        self.thread = threading.Thread(target=self._mediapipe_worker, daemon=True)
        self._init_camera_capture()

    def _init_camera_capture(self):
        camera_index = self.config.get('hand_tracking', 'camera_index', default=0)
        self.cap = cv2.VideoCapture(camera_index)
        if not self.cap.isOpened():
            self.cap.release()
            raise RuntimeError("カメラが見つかりません。")
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.get('hand_tracking', 'capture_width', default=640))
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.get('hand_tracking', 'capture_height', default=480))
        self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        self.camera_width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.camera_height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        print(f"カメラ解像度: {self.camera_width}x{self.camera_height}")

    def start(self):
        self.running = True
        self.thread.start()
        print("✓ ハンドトラッキングを開始しました")

    def _mediapipe_worker(self):
        mp_hands = mp.solutions.hands
        mp_drawing = mp.solutions.drawing_utils
        hands = mp_hands.Hands(
            max_num_hands=1,
            model_complexity=self.config.get('mediapipe', 'model_complexity', default=1),
            min_detection_confidence=self.config.get('mediapipe', 'min_detection_confidence', default=0.5),
            min_tracking_confidence=self.config.get('mediapipe', 'min_tracking_confidence', default=0.5),
        )
        while self.running:
            ret, frame = self.cap.read()
            if not ret: continue
            rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            rgb_frame.flags.writeable = False
            results = hands.process(rgb_frame)
            rgb_frame.flags.writeable = True

            hand = results.multi_hand_landmarks[0] if results.multi_hand_landmarks else None
            # 位置のミラー反転は gesture_from_landmarks 側で行う
            signal = gesture_from_landmarks(
                hand.landmark if hand is not None else None, self.open_min, self.open_max
            )
            self._publish(self.gesture_queue, signal)

            if self.show_preview:
                if hand is not None:
                    mp_drawing.draw_landmarks(frame, hand, mp_hands.HAND_CONNECTIONS)
                self._publish(self.video_queue, cv2.flip(frame, 1))
        hands.close()

    def _publish(self, target_queue, item):
        try:
            target_queue.put_nowait(item)
        except queue.Full:
            # 古いものを捨てて最新を入れる
            try:
                target_queue.get_nowait()
            except queue.Empty:
                pass
            try:
                target_queue.put_nowait(item)
            except queue.Full:
                pass

    def poll(self):
        """最新のGestureSignalを返す。新しい値がなければ前回の値をそのまま返す"""
        while True:
            try:
                self.latest = self.gesture_queue.get_nowait()
            except queue.Empty:
                return self.latest

    def poll_preview(self):
        try:
            return self.video_queue.get_nowait()
        except queue.Empty:
            return None

    def toggle_preview(self):
        self.show_preview = not self.show_preview
        print(f"カメラプレビュー表示: {'ON' if self.show_preview else 'OFF'}")
        return self.show_preview

    def stop(self):
        self.running = False
        if self.thread.is_alive():
            self.thread.join(timeout=1)
        self.cap.release()
        print("ハンドトラッキングを停止しました。")
