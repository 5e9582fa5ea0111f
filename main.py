"""
Photo Inference — entry point.
Run: python main.py [--config config.yaml] [--bundle path/to/model.tiobundle]
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

# Reduce TensorFlow console noise (INFO and WARNING)
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")

from PySide6.QtWidgets import QApplication

from core.config import load_config
from core.pipeline import CapturePipeline
from ui.main_window import CameraWindow


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Capture a photo and run the bundled model on it")
    p.add_argument("--config", default="config.yaml")
    p.add_argument("--bundle", help="Model bundle name under models/ or a path (overrides config)")
    p.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], type=str.upper)
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    cfg = load_config(args.config)
    if args.bundle:
        cfg.bundle = args.bundle
    if args.log_level:
        cfg.log_level = args.log_level
    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = QApplication(sys.argv[:1])
    window = CameraWindow()
    pipeline = CapturePipeline(cfg, sink=window)
    window.attach(pipeline)
    pipeline.setup()
    window.bind_session()
    window.show()
    sys.exit(app.exec())


if __name__ == "__main__":
    main()
