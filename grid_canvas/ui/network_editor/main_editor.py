from __future__ import annotations

import logging

from PyQt5.QtCore import Qt
from PyQt5.QtGui import QKeySequence
from PyQt5.QtWidgets import (
    QAction, QDialog, QFileDialog, QLabel, QMenuBar, QMessageBox, QVBoxLayout
)

from .components import COMPONENT_TYPES, PALETTE_GROUPS
from .config import EditorSettings
from .scene import NetworkScene
from .tables import component_summary, export_incidence_csv
from .view import CanvasView

logger = logging.getLogger(__name__)


class NetworkEditor(QDialog):
    """電力網路圖編輯器 - 主視窗"""

    def __init__(self, settings: EditorSettings = None, parent=None) -> None:
        super().__init__(parent)
        self.setWindowTitle("電力網路圖編輯器")
        self.resize(1200, 800)

        # 設定視窗標誌
        self.setWindowFlags(
            Qt.Window |
            Qt.WindowTitleHint |
            Qt.WindowSystemMenuHint |
            Qt.WindowMinimizeButtonHint |
            Qt.WindowMaximizeButtonHint |
            Qt.WindowCloseButtonHint
        )

        self.scene = NetworkScene(settings)
        self.view = CanvasView(self.scene, self)
        self.statusLabel = QLabel(self)

        self.setupUI()

        self.scene.entitiesChanged.connect(self.updateStatus)
        self.scene.history.stateChanged.connect(self.updateUndoRedoState)
        self.updateStatus()
        self.updateUndoRedoState(self.scene.history.canUndo(), self.scene.history.canRedo())

    def setupUI(self) -> None:
        """設定使用者介面"""
        layout = QVBoxLayout(self)

        # 選單列
        menuBar = QMenuBar(self)
        layout.setMenuBar(menuBar)

        # 檔案選單
        fileMenu = menuBar.addMenu("檔案(&F)")

        exportAction = QAction("匯出關聯矩陣(&E)...", self)
        exportAction.setShortcut(QKeySequence.SaveAs)
        exportAction.triggered.connect(self.exportIncidence)
        fileMenu.addAction(exportAction)

        # 編輯選單
        editMenu = menuBar.addMenu("編輯(&E)")

        self.undoAction = QAction("撤銷(&U)", self)
        self.undoAction.setShortcut(QKeySequence.Undo)
        self.undoAction.triggered.connect(self.scene.undo)
        editMenu.addAction(self.undoAction)

        self.redoAction = QAction("重做(&R)", self)
        self.redoAction.setShortcuts([QKeySequence.Redo, QKeySequence("Ctrl+Shift+Z")])
        self.redoAction.triggered.connect(self.scene.redo)
        editMenu.addAction(self.redoAction)

        editMenu.addSeparator()

        rotateAction = QAction("旋轉匯流排(&T)", self)
        rotateAction.setShortcut("R")
        rotateAction.triggered.connect(self.scene.rotateSelected)
        editMenu.addAction(rotateAction)

        clearAction = QAction("清空場景", self)
        clearAction.triggered.connect(self.confirmClear)
        editMenu.addAction(clearAction)

        # 元件選單（依調色盤分組）
        placeMenu = menuBar.addMenu("元件(&C)")
        for group, typeNames in PALETTE_GROUPS.items():
            submenu = placeMenu.addMenu(group)
            for typeName in typeNames:
                action = QAction(COMPONENT_TYPES[typeName].label, self)
                action.triggered.connect(lambda _checked, t=typeName: self.scene.startPlacing(t))
                submenu.addAction(action)

        regionAction = QAction("繪製區域(&Z)", self)
        regionAction.triggered.connect(lambda: self.scene.startDrawingRegion())
        placeMenu.addSeparator()
        placeMenu.addAction(regionAction)

        # 檢視選單
        viewMenu = menuBar.addMenu("檢視(&V)")

        centerAction = QAction("置中(&C)", self)
        centerAction.setShortcut("Ctrl+0")
        centerAction.triggered.connect(self.scene.centerView)
        viewMenu.addAction(centerAction)

        gridAction = QAction("顯示網格(&G)", self)
        gridAction.setCheckable(True)
        gridAction.setChecked(True)
        gridAction.toggled.connect(self.view.setGridVisible)
        viewMenu.addAction(gridAction)

        layout.addWidget(self.view)
        layout.addWidget(self.statusLabel)

    def updateStatus(self) -> None:
        self.statusLabel.setText(component_summary(self.scene.entities))

    def updateUndoRedoState(self, canUndo: bool, canRedo: bool) -> None:
        """更新撤銷/重做按鈕狀態"""
        self.undoAction.setEnabled(canUndo)
        self.redoAction.setEnabled(canRedo)

    def confirmClear(self) -> None:
        reply = QMessageBox.question(self, "清空場景", "確定要移除所有元件與區域？")
        if reply == QMessageBox.Yes:
            self.scene.clearScene()

    def exportIncidence(self) -> None:
        """匯出關聯矩陣"""
        path, _ = QFileDialog.getSaveFileName(self, "匯出關聯矩陣", "", "CSV Files (*.csv)")
        if path:
            try:
                export_incidence_csv(self.scene.entities, path)
                QMessageBox.information(self, "完成", f"已匯出關聯矩陣：{path}")
            except OSError as e:
                logger.error("匯出失敗：%s", e)
                QMessageBox.critical(self, "錯誤", f"匯出失敗：{e}")
