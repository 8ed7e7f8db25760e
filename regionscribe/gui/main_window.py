# regionscribe/gui/main_window.py
import logging
import threading

from PyQt6.QtCore import Qt, QObject, QSize, pyqtSignal
from PyQt6.QtGui import QIcon, QPixmap
from PyQt6.QtWidgets import (QMainWindow, QWidget, QSplitter, QVBoxLayout, QHBoxLayout, QFormLayout,
                             QGroupBox, QListWidget, QListWidgetItem, QPushButton, QComboBox, QDoubleSpinBox,
                             QSpinBox, QPlainTextEdit, QLabel, QFileDialog, QMessageBox)

from regionscribe.config.config import config, APP_NAME, APP_VERSION, TEMPERATURE_RANGE, CONTEXT_LENGTH_RANGE
from regionscribe.generation.demux import DemuxResult
from regionscribe.gui.image_canvas import ImageCanvas
from regionscribe.session.session import Session, SessionCallbacks

logger = logging.getLogger(__name__)

IMAGE_FILTER = "Images (*.png *.jpg *.jpeg *.bmp *.gif *.webp *.tif *.tiff)"


class SessionBridge(QObject):
    """Re-emits session callbacks as Qt signals so worker-thread updates land on the GUI thread."""
    regions_changed = pyqtSignal(object)
    crop_preview_changed = pyqtSignal(object)
    generation_progress = pyqtSignal(str)
    job_state_changed = pyqtSignal(object)
    error_changed = pyqtSignal(object)
    models_changed = pyqtSignal(object)
    images_changed = pyqtSignal(object, int)
    generating_changed = pyqtSignal(bool)

    def callbacks(self) -> SessionCallbacks:
        return SessionCallbacks(
            on_regions_changed=self.regions_changed.emit,
            on_crop_preview_changed=self.crop_preview_changed.emit,
            on_generation_progress=self.generation_progress.emit,
            on_job_state_changed=self.job_state_changed.emit,
            on_error_changed=self.error_changed.emit,
            on_models_changed=self.models_changed.emit,
            on_images_changed=self.images_changed.emit,
            on_generating_changed=self.generating_changed.emit,
        )


class MainWindow(QMainWindow):
    def __init__(self, session: Session, bridge: SessionBridge, parent=None):
        super().__init__(parent)
        self.session = session
        self.bridge = bridge
        self.setWindowTitle(f"{APP_NAME} {APP_VERSION}")
        self.resize(1400, 850)

        # --- notice banner ---
        self.error_label = QLabel()
        self.error_label.setWordWrap(True)
        self.error_label.setStyleSheet("color: #7f1d1d;")
        self.error_dismiss_button = QPushButton("Dismiss")
        self.error_dismiss_button.clicked.connect(self.session.dismiss_error)
        self.error_banner = QWidget()
        self.error_banner.setStyleSheet("background-color: #fee2e2;")
        banner_layout = QHBoxLayout(self.error_banner)
        banner_layout.addWidget(self.error_label, 1)
        banner_layout.addWidget(self.error_dismiss_button)
        self.error_banner.hide()

        # --- images ---
        self.image_list = QListWidget()
        self.image_list.setIconSize(QSize(96, 96))
        self.image_list.currentRowChanged.connect(self._on_image_row_changed)
        add_images_button = QPushButton("Add Images...")
        add_images_button.clicked.connect(self.add_images)
        images_panel = QWidget()
        images_layout = QVBoxLayout(images_panel)
        images_layout.addWidget(add_images_button)
        images_layout.addWidget(self.image_list)

        # --- canvas and region actions ---
        self.canvas = ImageCanvas()
        self.canvas.selection_changed.connect(self._update_buttons)
        self.save_region_button = QPushButton("Save Region")
        self.save_region_button.clicked.connect(self.save_region)
        self.clear_regions_button = QPushButton("Clear Regions")
        self.clear_regions_button.clicked.connect(self.session.reset_regions)
        self.generate_button = QPushButton("Generate")
        self.generate_button.clicked.connect(self.generate_or_stop)
        actions_layout = QHBoxLayout()
        for button in (self.save_region_button, self.clear_regions_button, self.generate_button):
            actions_layout.addWidget(button)

        self.region_list = QListWidget()
        self.region_list.setMaximumHeight(120)
        self.delete_region_button = QPushButton("Delete Region")
        self.delete_region_button.clicked.connect(self.delete_selected_region)
        self.crop_preview = QLabel()
        self.crop_preview.setFixedSize(160, 120)
        self.crop_preview.setAlignment(Qt.AlignmentFlag.AlignCenter)
        regions_row = QHBoxLayout()
        regions_column = QVBoxLayout()
        regions_column.addWidget(self.region_list)
        regions_column.addWidget(self.delete_region_button)
        regions_row.addLayout(regions_column, 1)
        regions_row.addWidget(self.crop_preview)

        canvas_panel = QWidget()
        canvas_layout = QVBoxLayout(canvas_panel)
        canvas_layout.addLayout(actions_layout)
        canvas_layout.addWidget(self.canvas, 1)
        canvas_layout.addLayout(regions_row)

        # --- model settings, prompt and output ---
        settings_group = QGroupBox("Model Settings")
        settings_layout = QFormLayout()
        self.model_combo = QComboBox()
        self.model_combo.currentTextChanged.connect(self._on_model_selected)
        refresh_button = QPushButton("Refresh")
        refresh_button.clicked.connect(self.refresh_models)
        model_row = QHBoxLayout()
        model_row.addWidget(self.model_combo, 1)
        model_row.addWidget(refresh_button)
        settings_layout.addRow("Model:", model_row)
        self.temperature_spin = QDoubleSpinBox()
        self.temperature_spin.setRange(*TEMPERATURE_RANGE)
        self.temperature_spin.setSingleStep(0.1)
        self.temperature_spin.setValue(config.temperature)
        settings_layout.addRow("Temperature:", self.temperature_spin)
        self.context_spin = QSpinBox()
        self.context_spin.setRange(*CONTEXT_LENGTH_RANGE)
        self.context_spin.setSingleStep(1024)
        self.context_spin.setValue(config.context_length)
        settings_layout.addRow("Context Length:", self.context_spin)
        self.seed_spin = QSpinBox()
        self.seed_spin.setRange(0, 2 ** 31 - 1)
        self.seed_spin.setValue(config.seed)
        settings_layout.addRow("Seed:", self.seed_spin)
        settings_group.setLayout(settings_layout)

        self.prompt_edit = QPlainTextEdit(config.prompt)
        self.prompt_edit.setMaximumHeight(100)

        self.status_label = QLabel()
        self._updating_output = False
        self.output_edit = QPlainTextEdit()
        self.output_edit.setPlaceholderText("Generated text output (editable)")
        self.output_edit.textChanged.connect(self._on_output_edited)
        self.export_button = QPushButton("Export .txt")
        self.export_button.clicked.connect(self.export_text)
        self.clear_text_button = QPushButton("Clear")
        self.clear_text_button.clicked.connect(self.session.clear_output)
        output_buttons = QHBoxLayout()
        output_buttons.addWidget(self.export_button)
        output_buttons.addWidget(self.clear_text_button)

        output_panel = QWidget()
        output_layout = QVBoxLayout(output_panel)
        output_layout.addWidget(settings_group)
        output_layout.addWidget(QLabel("Prompt Template"))
        output_layout.addWidget(self.prompt_edit)
        output_layout.addWidget(self.status_label)
        output_layout.addWidget(self.output_edit, 1)
        output_layout.addLayout(output_buttons)

        splitter = QSplitter(Qt.Orientation.Horizontal)
        splitter.addWidget(images_panel)
        splitter.addWidget(canvas_panel)
        splitter.addWidget(output_panel)
        splitter.setSizes([300, 650, 450])

        central = QWidget()
        central_layout = QVBoxLayout(central)
        central_layout.addWidget(self.error_banner)
        central_layout.addWidget(splitter, 1)
        self.setCentralWidget(central)

        bridge.regions_changed.connect(self._on_regions_changed)
        bridge.crop_preview_changed.connect(self._on_crop_preview_changed)
        bridge.generation_progress.connect(self._on_generation_progress)
        bridge.job_state_changed.connect(self._on_job_state_changed)
        bridge.error_changed.connect(self._on_error_changed)
        bridge.models_changed.connect(self._on_models_changed)
        bridge.images_changed.connect(self._on_images_changed)
        bridge.generating_changed.connect(self._on_generating_changed)

        self._update_buttons()

    # --- startup ---

    def check_endpoint_async(self):
        def _check():
            try:
                if self.session.check_availability():
                    self.session.refresh_models()
            except Exception:
                logger.exception("An unexpected error occurred while contacting the inference endpoint.")

        threading.Thread(target=_check, daemon=True, name="EndpointCheck").start()

    def refresh_models(self):
        threading.Thread(target=self.session.refresh_models, daemon=True, name="ModelRefresh").start()

    # --- user actions ---

    def add_images(self):
        paths, _ = QFileDialog.getOpenFileNames(self, "Select images", "", IMAGE_FILTER)
        if paths:
            self.session.add_images(paths)

    def save_region(self):
        selection = self.canvas.current_selection()
        if selection is None:
            return
        display_rect, display_size = selection
        if self.session.save_region(display_rect, display_size) is not None:
            self.canvas.clear_selection()

    def delete_selected_region(self):
        item = self.region_list.currentItem()
        if item is not None:
            self.session.delete_region(item.data(Qt.ItemDataRole.UserRole))

    def generate_or_stop(self):
        if self.session.is_generating:
            self.session.stop()
            return
        config.temperature = self.temperature_spin.value()
        config.context_length = self.context_spin.value()
        config.seed = self.seed_spin.value()
        config.prompt = self.prompt_edit.toPlainText()
        self.session.generate()

    def export_text(self):
        path, _ = QFileDialog.getSaveFileName(self, "Export text", config.export_filename, "Text files (*.txt)")
        if not path:
            return
        try:
            self.session.export_text(path)
        except OSError as e:
            logger.error(f"Export failed: {e}")
            QMessageBox.warning(self, APP_NAME, f"Could not write {path}:\n{e}")

    # --- session notifications ---

    def _on_image_row_changed(self, row):
        if row >= 0 and row != self.session.selected_index:
            self.session.select_image(row)

    def _on_images_changed(self, images, selected_index):
        self.image_list.blockSignals(True)
        self.image_list.clear()
        for image in images:
            item = QListWidgetItem(image.name)
            if image.path:
                item.setIcon(QIcon(QPixmap(image.path).scaled(
                    96, 96, Qt.AspectRatioMode.KeepAspectRatio, Qt.TransformationMode.SmoothTransformation)))
            self.image_list.addItem(item)
        self.image_list.setCurrentRow(selected_index)
        self.image_list.blockSignals(False)

        active = self.session.active_image
        self.canvas.set_image(QPixmap(active.path) if active is not None and active.path else None)
        self._update_buttons()

    def _on_regions_changed(self, regions):
        self.canvas.set_regions(regions)
        self.region_list.clear()
        for i, region in enumerate(regions):
            r = region.geometry.rect
            item = QListWidgetItem(f"Region {i + 1}  ({int(r.width)}x{int(r.height)} px)")
            item.setData(Qt.ItemDataRole.UserRole, region.id)
            self.region_list.addItem(item)
        self._update_buttons()

    def _on_crop_preview_changed(self, raster):
        if raster is None:
            self.crop_preview.clear()
            return
        pixmap = QPixmap()
        pixmap.loadFromData(raster, "JPG")
        self.crop_preview.setPixmap(pixmap.scaled(
            self.crop_preview.size(), Qt.AspectRatioMode.KeepAspectRatio, Qt.TransformationMode.SmoothTransformation))

    def _on_generation_progress(self, text):
        self._updating_output = True
        self.output_edit.setPlainText(text)
        self.output_edit.verticalScrollBar().setValue(self.output_edit.verticalScrollBar().maximum())
        self._updating_output = False
        self._update_buttons()

    def _on_output_edited(self):
        if not self._updating_output:
            self.session.set_output_text(self.output_edit.toPlainText())
        self._update_buttons()

    def _on_job_state_changed(self, view: DemuxResult):
        parts = [f"Region {i + 1}: {state.label}" for i, state in enumerate(view.states)]
        if view.stop_note:
            parts.append(view.stop_note)
        self.status_label.setText("   ".join(parts))

    def _on_error_changed(self, message):
        self.error_label.setText(message or "")
        self.error_banner.setVisible(bool(message))

    def _on_models_changed(self, models):
        self.model_combo.blockSignals(True)
        self.model_combo.clear()
        if models:
            self.model_combo.addItems(models)
            self.model_combo.setCurrentText(self.session.model)
        else:
            self.model_combo.setPlaceholderText("No models found")
        self.model_combo.blockSignals(False)
        self._update_buttons()

    def _on_model_selected(self, model):
        if model:
            self.session.select_model(model)

    def _on_generating_changed(self, generating):
        self.generate_button.setText("Stop" if generating else "Generate")
        self.output_edit.setReadOnly(generating)
        self.canvas.interactive = not generating
        self._update_buttons()

    def _update_buttons(self, *_):
        generating = self.session.is_generating
        has_image = self.session.active_image is not None
        has_regions = not self.session.store.is_empty
        has_text = bool(self.output_edit.toPlainText())
        self.save_region_button.setEnabled(self.canvas.current_selection() is not None and not generating)
        self.clear_regions_button.setEnabled(has_regions and not generating)
        self.delete_region_button.setEnabled(has_regions and not generating)
        self.generate_button.setEnabled(generating or has_image)
        self.export_button.setEnabled(has_text and not generating)
        self.clear_text_button.setEnabled(has_text and not generating)
        self.image_list.setEnabled(not generating)

    def closeEvent(self, event):
        self.session.stop()
        try:
            config.save()
        except OSError as e:
            logger.warning(f"Could not save settings: {e}")
        super().closeEvent(event)
