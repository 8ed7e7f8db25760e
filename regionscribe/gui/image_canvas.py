# regionscribe/gui/image_canvas.py
import logging
from typing import List, Optional, Tuple

from PyQt6.QtCore import Qt, QPointF, QRectF, pyqtSignal
from PyQt6.QtGui import QColor, QPainter, QPen, QPixmap, QMouseEvent, QKeyEvent
from PyQt6.QtWidgets import QWidget, QSizePolicy

from regionscribe.regions.geometry import Rect, Size, region_to_display
from regionscribe.regions.store import Region, region_color

logger = logging.getLogger(__name__)

MIN_SELECTION_PX = 4


class ImageCanvas(QWidget):
    """
    Shows the active image scaled to fit, lets the user drag a selection on it and
    draws the saved regions on top.

    Region overlays are derived from their natural geometry on every paint, so they
    stay in place whatever size the widget currently has.
    """
    selection_changed = pyqtSignal(bool)

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Expanding)
        self.setMinimumSize(200, 200)
        self.setFocusPolicy(Qt.FocusPolicy.StrongFocus)
        self.setCursor(Qt.CursorShape.CrossCursor)

        self.pixmap: Optional[QPixmap] = None
        self.regions: List[Region] = []
        self.interactive = True

        self.begin: Optional[QPointF] = None
        self.end: Optional[QPointF] = None
        self.has_selection_started = False

    def set_image(self, pixmap: Optional[QPixmap]):
        self.pixmap = pixmap if pixmap is not None and not pixmap.isNull() else None
        self.clear_selection()

    def set_regions(self, regions: List[Region]):
        self.regions = list(regions)
        self.update()

    def clear_selection(self):
        self.begin = self.end = None
        self.has_selection_started = False
        self.selection_changed.emit(False)
        self.update()

    def image_rect(self) -> QRectF:
        """Where the scaled image is drawn inside the widget."""
        if self.pixmap is None:
            return QRectF()
        scaled = self.pixmap.size().scaled(self.size(), Qt.AspectRatioMode.KeepAspectRatio)
        x = (self.width() - scaled.width()) / 2
        y = (self.height() - scaled.height()) / 2
        return QRectF(x, y, scaled.width(), scaled.height())

    def display_size(self) -> Size:
        rect = self.image_rect()
        return Size(rect.width(), rect.height())

    def current_selection(self) -> Optional[Tuple[Rect, Size]]:
        """The dragged rectangle relative to the displayed image, with the displayed size."""
        if self.begin is None or self.end is None:
            return None
        area = self.image_rect()
        selection = QRectF(self.begin, self.end).normalized().intersected(area)
        if selection.width() < MIN_SELECTION_PX or selection.height() < MIN_SELECTION_PX:
            return None
        rect = Rect(selection.x() - area.x(), selection.y() - area.y(), selection.width(), selection.height())
        return rect, self.display_size()

    def paintEvent(self, event):
        painter = QPainter(self)
        painter.fillRect(self.rect(), QColor(30, 30, 30))
        if self.pixmap is None:
            painter.setPen(QColor(160, 160, 160))
            painter.drawText(self.rect(), Qt.AlignmentFlag.AlignCenter, "Upload an image to get started")
            return

        area = self.image_rect()
        painter.drawPixmap(area.toRect(), self.pixmap)

        display_size = self.display_size()
        for i, region in enumerate(self.regions):
            r = region_to_display(region.geometry, display_size)
            overlay = QRectF(area.x() + r.x, area.y() + r.y, r.width, r.height)
            red, green, blue = region_color(i)
            painter.fillRect(overlay, QColor(red, green, blue, 64))
            painter.setPen(QPen(QColor(red, green, blue, 128), 2))
            painter.drawRect(overlay)
            painter.drawText(overlay.adjusted(4, 2, 0, 0), Qt.AlignmentFlag.AlignLeft, f"Region {i + 1}")

        if self.has_selection_started and self.begin is not None and self.end is not None:
            red, green, blue = region_color(len(self.regions))
            selection = QRectF(self.begin, self.end).normalized().intersected(area)
            painter.fillRect(selection, QColor(red, green, blue, 64))
            painter.setPen(QPen(QColor(red, green, blue), 1, Qt.PenStyle.DashLine))
            painter.drawRect(selection.adjusted(0, 0, -1, -1))

    def mousePressEvent(self, event: QMouseEvent):
        if not self.interactive or self.pixmap is None or event.button() != Qt.MouseButton.LeftButton:
            return
        self.begin = self.end = event.position()
        self.has_selection_started = True
        self.update()

    def mouseMoveEvent(self, event: QMouseEvent):
        if not self.has_selection_started:
            return
        self.end = event.position()
        self.update()

    def mouseReleaseEvent(self, event: QMouseEvent):
        if not self.has_selection_started:
            return
        self.end = event.position()
        self.selection_changed.emit(self.current_selection() is not None)
        self.update()

    def keyPressEvent(self, event: QKeyEvent):
        if event.key() == Qt.Key.Key_Escape:
            self.clear_selection()
        else:
            super().keyPressEvent(event)
