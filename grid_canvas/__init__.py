"""grid-canvas：電力網路拓撲圖編輯器"""

__version__ = "0.1.0"
