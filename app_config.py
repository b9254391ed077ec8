# -*- coding: utf-8 -*-
import copy
import json
import sys


class Config:
    """config.jsonから設定を読み込み、管理するクラス"""
    def __init__(self, path='config.json', data=None):
        self.path = path
        if data is not None:
            self._data = copy.deepcopy(data)
            return
        try:
            with open(path, 'r', encoding='utf-8') as f:
                self._data = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError) as e:
            print(f"[エラー] 設定ファイル '{path}' が見つからないか、形式が正しくありません。: {e}")
            sys.exit(1)

    @classmethod
    def from_dict(cls, data):
        """辞書から直接生成する（テストや埋め込み用）"""
        return cls(path=None, data=data)

    def get(self, *keys, default=None):
        """ネストしたキーで設定値を取得する"""
        try:
            value = self._data
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def section(self, key):
        """セクション全体を辞書で返す（存在しなければ空辞書）"""
        value = self._data.get(key)
        return dict(value) if isinstance(value, dict) else {}

    def set(self, *keys, value):
        """ネストしたキーで設定値を設定する（実行時のみ）"""
        if len(keys) == 0:
            return
        current = self._data
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value
