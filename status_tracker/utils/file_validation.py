"""
Schedule file validation utilities.

Only the filename extension and size are checked; schedule contents are
handed to storage untouched.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Set
import logging

logger = logging.getLogger(__name__)

# Primavera XER, MS Project, PDF and Excel exports
SCHEDULE_EXTENSIONS: Set[str] = {".xer", ".mpp", ".pdf", ".xls", ".xlsx"}


@dataclass
class ScheduleFile:
    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)


def is_valid_schedule_filename(filename: Optional[str]) -> bool:
    if not filename:
        return False
    return Path(filename).suffix.lower() in SCHEDULE_EXTENSIONS


def select_schedule_file(
    filename: Optional[str],
    data: bytes,
    content_type: Optional[str] = None,
) -> Optional[ScheduleFile]:
    """
    Accept a schedule file at selection time.

    Returns None (nothing selected) when the extension is not one of
    SCHEDULE_EXTENSIONS, e.g. ``plan.docx``.
    """
    if not is_valid_schedule_filename(filename):
        logger.info(f"Rejected schedule file with unsupported extension: {filename}")
        return None
    return ScheduleFile(filename=filename, data=data, content_type=content_type)


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent path traversal and other attacks.
    """
    filename = Path(filename.replace("\\", "/")).name

    dangerous_chars = ['..', '/', '\\', '<', '>', ':', '"', '|', '?', '*', '\x00']
    for char in dangerous_chars:
        filename = filename.replace(char, '_')

    if len(filename) > 255:
        ext = Path(filename).suffix
        name = Path(filename).stem[:255 - len(ext)]
        filename = f"{name}{ext}"

    return filename
