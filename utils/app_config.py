# utils/app_config.py
import json
import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass
class AppConfig:
    """
    アプリケーション全体の設定をカプセル化するデータクラス。

    既定値はこのクラスに定義し、`load()` でJSONファイルの値を上書きします。
    """
    data_dir: str = "data"
    log_level: str = "WARNING"

    # リモート注釈API
    api_base_url: str = ""
    api_token: str = ""
    pdf_id: str = ""
    api_timeout: int = 15

    # OCR
    ocr_language: str = "eng"
    ocr_scale: float = 2.0
    ocr_tick_ms: int = 200
    ocr_estimated_ms: int = 5000
    ocr_expiry_ms: int = 2000
    auto_ocr: bool = True

    # 描画
    min_shape_size: float = 0.01
    pressure_min: float = 0.25
    pressure_max: float = 1.35
    brush_sizes: List[float] = field(default_factory=lambda: [5.2, 5.8, 25.6, 35.6, 45.8])
    default_brush_size: float = 25.6
    default_opacity: float = 1.0
    highlight_colors: List[str] = field(default_factory=lambda: [
        "#FFEB3B", "#FF9800", "#4CAF50", "#2196F3", "#E91E63", "#9C27B0",
    ])
    freehand_colors: List[str] = field(default_factory=lambda: [
        "#111827", "#EF4444", "#2563EB", "#10B981", "#F59E0B", "#8B5CF6",
    ])

    # ワークスペース
    workspace_margin: Tuple[float, float] = (0.02, 0.98)
    flash_ms: int = 1000

    @classmethod
    def load(cls, path: Optional[str] = None) -> "AppConfig":
        """JSONファイルから設定を読み込む。

        ファイルが無い・壊れている場合は既定値を返します。未知のキーは無視します。

        Args:
            path (Optional[str]): 設定ファイルのパス。

        Returns:
            AppConfig: 設定オブジェクト。
        """
        config = cls()
        if not path or not os.path.exists(path):
            return config
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("設定ファイルを読み込めませんでした: %s (%s)", path, e)
            return config
        if not isinstance(data, dict):
            logger.warning("設定ファイルの形式が不正です: %s", path)
            return config
        known = {f.name for f in fields(cls)}
        overrides: Dict[str, Any] = {k: v for k, v in data.items() if k in known}
        if "workspace_margin" in overrides:
            overrides["workspace_margin"] = tuple(overrides["workspace_margin"])
        for key, value in overrides.items():
            setattr(config, key, value)
        return config
