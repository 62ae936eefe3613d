"""Application entrypoint."""

from __future__ import annotations

import logging
import sys

from config import JsonConfigStore
from errors import CaptureError
from hotkey import GlobalHotkeyAdapter
from models import SessionState
from overlay import OverlayWindow
from permissions import DesktopPermissionProvider
from recognizer import DashscopeTranscriptionService
from recorder import SoundDeviceRecorder
from session_controller import SessionController

try:
    from PySide6.QtCore import QObject, QSize, Signal
    from PySide6.QtGui import QAction, QBrush, QColor, QIcon, QPainter, QPixmap
    from PySide6.QtWidgets import QApplication, QInputDialog, QMenu, QMessageBox, QSystemTrayIcon
except Exception as exc:  # pragma: no cover
    raise SystemExit(f"PySide6 is required to run the desktop app: {exc}")

LOG = logging.getLogger("voice_capture.app")


def _create_icon(color: str = "#888888", size: int = 22) -> QIcon:
    """Generate a simple circular tray icon with the given color."""
    pixmap = QPixmap(QSize(size, size))
    pixmap.fill(QColor(0, 0, 0, 0))  # transparent background
    painter = QPainter(pixmap)
    painter.setRenderHint(QPainter.Antialiasing, True)
    painter.setBrush(QBrush(QColor(color)))
    painter.setPen(QColor(color))
    painter.drawEllipse(2, 2, size - 4, size - 4)
    painter.end()
    return QIcon(pixmap)


ICON_IDLE = "#888888"       # grey
ICON_RECORDING = "#FF4444"  # red
ICON_WAITING = "#3399FF"    # blue
ICON_ERROR = "#FF8800"      # orange


class UIBridge(QObject):
    text_signal = Signal(str)
    level_signal = Signal(float, bool)
    error_signal = Signal(str)
    state_signal = Signal(str, str)  # from_state, to_state


class App:
    def __init__(self) -> None:
        self.app = QApplication(sys.argv)
        self.config_store = JsonConfigStore()
        self.overlay = OverlayWindow()
        self.ui = UIBridge()
        self.ui.text_signal.connect(self.overlay.set_text)
        self.ui.level_signal.connect(self.overlay.set_level)
        self.ui.error_signal.connect(self.overlay.show_error)
        self.ui.state_signal.connect(self._on_state_change_ui)

        transcription = DashscopeTranscriptionService(api_key=self.config_store.get_api_key)
        self.controller = SessionController(
            audio_source=SoundDeviceRecorder(),
            transcription=transcription,
            permissions=DesktopPermissionProvider(transcription),
            settings=self.config_store.get_capture_settings(),
            on_state_change=self._on_state_change,
            on_partial=self.ui.text_signal.emit,
            on_final=self.ui.text_signal.emit,
            on_error=self._on_error,
            on_level=self.ui.level_signal.emit,
        )
        self.hotkey = GlobalHotkeyAdapter(hotkey_name=self.config_store.get_hotkey())

        self.tray = QSystemTrayIcon()
        self.tray.setIcon(_create_icon(ICON_IDLE))
        self.tray.setToolTip("Voice Capture — Ready")
        self._setup_menu()
        self.tray.show()

    def _setup_menu(self) -> None:
        menu = QMenu()

        api_action = QAction("Set API Key", menu)
        api_action.triggered.connect(self._set_api_key)
        menu.addAction(api_action)

        hotkey_action = QAction("Set Hotkey", menu)
        hotkey_action.triggered.connect(self._set_hotkey)
        menu.addAction(hotkey_action)

        menu.addSeparator()
        quit_action = QAction("Quit", menu)
        quit_action.triggered.connect(self.quit)
        menu.addAction(quit_action)

        self.tray.setContextMenu(menu)

    def _set_api_key(self) -> None:
        value, ok = QInputDialog.getText(None, "API Key", "DashScope API Key")
        if not ok:
            return
        self.config_store.set_api_key(value)
        QMessageBox.information(None, "Saved", "API Key saved. It is used from the next session.")

    def _set_hotkey(self) -> None:
        value, ok = QInputDialog.getText(None, "Hotkey", "Use pynput key format, e.g. Key.alt_l")
        if not ok or not value:
            return
        self.config_store.set_hotkey(value)
        QMessageBox.information(None, "Saved", "Hotkey saved. Restart app to apply.")

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads → emit signals for UI thread)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        self.ui.state_signal.emit(from_state.value, to_state.value)

    def _on_error(self, code: str, message: str) -> None:
        LOG.info("surfacing error %s", code)
        self.ui.error_signal.emit(message)

    def _on_state_change_ui(self, from_state: str, to_state: str) -> None:
        if to_state == SessionState.RECORDING.value:
            self.tray.setIcon(_create_icon(ICON_RECORDING))
            self.tray.setToolTip("Voice Capture — Listening...")
            if from_state == SessionState.IDLE.value:
                self.overlay.set_text("🎙️ Listening...")
        elif to_state == SessionState.AWAITING_FINAL_RESULT.value:
            self.tray.setIcon(_create_icon(ICON_WAITING))
            self.tray.setToolTip("Voice Capture — Processing...")
        elif to_state == SessionState.IDLE.value:
            self.tray.setIcon(_create_icon(ICON_IDLE))
            self.tray.setToolTip("Voice Capture — Ready")
            self.overlay.hide_with_delay(1500)
        elif to_state == SessionState.FAILED.value:
            self.tray.setIcon(_create_icon(ICON_ERROR))
            self.tray.setToolTip("Voice Capture — Error")

    # ------------------------------------------------------------------
    # Hotkey handler
    # ------------------------------------------------------------------

    def _on_hotkey_toggle(self) -> None:
        if self.controller.state in (SessionState.IDLE, SessionState.FAILED):
            try:
                self.controller.start_session()
            except CaptureError as exc:
                LOG.warning("could not start recording: %s", exc)
        else:
            self.controller.stop_session()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(on_toggle=self._on_hotkey_toggle)
        except Exception as exc:
            self.overlay.show_error(f"Hotkey disabled: {exc}")
        return self.app.exec()

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.close()
        self.app.quit()


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = App()
    return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
