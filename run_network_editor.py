#!/usr/bin/env python3
"""
電力網路圖編輯器啟動器

使用方式：
    python run_network_editor.py                     # 預設設定
    python run_network_editor.py --grid 10           # 指定網格間距
    python run_network_editor.py --history 100       # 指定撤銷步數
    python run_network_editor.py --log-level DEBUG   # 顯示手勢除錯訊息

快速操作指南：
    - 放置元件：選單 > 元件，點擊畫布放置（按住 Shift 可連續放置）
    - 繪製區域：選單 > 元件 > 繪製區域，在畫布上拖曳
    - 平移：在空白處拖曳
    - 縮放：滾輪（以游標為中心）
    - 旋轉匯流排：右鍵點擊
    - 撤銷/重做：Ctrl+Z / Ctrl+Y
    - 取消模式：Esc
    - 刪除：選中後按 Delete
"""

import sys
import argparse
import logging

from PyQt5.QtWidgets import QApplication

from grid_canvas.ui.network_editor import EditorSettings, NetworkEditor


def create_parser() -> argparse.ArgumentParser:
    """
    建立命令列參數解析器。

    Returns:
        ArgumentParser 物件
    """
    parser = argparse.ArgumentParser(
        description="Grid Canvas - 電力網路圖編輯器",
    )

    parser.add_argument(
        '--grid',
        type=float,
        default=20.0,
        help='網格間距（預設：20）'
    )

    parser.add_argument(
        '--history',
        type=int,
        default=50,
        help='撤銷紀錄上限（預設：50）'
    )

    parser.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='WARNING',
        help='日誌等級（預設：WARNING）'
    )

    return parser


def main():
    """主程式進入點。"""
    parser = create_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    if args.history < 1:
        parser.error('--history 必須為正整數')

    settings = EditorSettings(grid_size=args.grid, history_capacity=args.history)

    # 建立 Qt 應用程式
    app = QApplication(sys.argv)
    app.setApplicationName("Grid Canvas")
    app.setStyle('Fusion')

    editor = NetworkEditor(settings)
    editor.show()

    sys.exit(app.exec_())


if __name__ == "__main__":
    main()
