"""
Helper functions and utilities.
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from codechecker import PlagiarismProgress


def setup_logging(log_dir: str = "./logs", level: str = "INFO"):
    """Setup logging configuration"""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / f"codechecker_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    return logging.getLogger(__name__)


def format_percentage(score: float) -> str:
    """Format a 0-100 score as percentage"""
    return f"{score:.2f}%"


def format_time(seconds: float) -> str:
    """Format seconds as human-readable time"""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def print_progress(progress: PlagiarismProgress, width: int = 30, stream=None):
    """Render a one-line progress bar"""
    stream = stream or sys.stderr
    filled = int(width * progress.fraction)
    bar = '#' * filled + '-' * (width - filled)
    stream.write(f"\r[{bar}] {progress.current}/{progress.total}")
    if progress.current >= progress.total:
        stream.write("\n")
    stream.flush()
