# regionscribe/main.py
import signal
import sys

from PyQt6.QtWidgets import QApplication

from regionscribe.config.config import config, APP_NAME, APP_VERSION
from regionscribe.gui.main_window import MainWindow, SessionBridge
from regionscribe.inference.inference import create_client
from regionscribe.session.session import Session
from regionscribe.utils.logger import setup_logging


def main():
    setup_logging()

    app = QApplication(sys.argv)
    app.setApplicationName(APP_NAME)

    bridge = SessionBridge()
    session = Session(create_client(config.inference_provider), bridge.callbacks())
    window = MainWindow(session, bridge)
    window.show()
    window.check_endpoint_async()

    signal.signal(signal.SIGINT, signal.SIG_DFL)
    ready_message = f"""
    --------------------------------------------------
    {APP_NAME}.{APP_VERSION} is running.

      - Inference endpoint: {config.base_url} ({config.inference_provider})
      - Drag on the image and press 'Save Region' to add regions.
      - 'Generate' extracts text region by region; 'Stop' aborts.
      - To exit: close the window or press Ctrl+C in this terminal.

    --------------------------------------------------
    """
    print(ready_message)
    sys.exit(app.exec())


if __name__ == '__main__':
    main()
