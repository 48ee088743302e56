"""
Loading code submissions from the filesystem.
"""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .config import (
    Submission, SubmissionStatus, DEFAULT_EXTENSIONS, MAX_SUBMISSION_BYTES,
    compute_code_hash
)

logger = logging.getLogger(__name__)


class SubmissionLoader:
    """Builds submissions from source files.

    A directory may hold one file per student (``alice.py``) or one
    folder per student (``alice/main.py``); the student name is the file
    stem or the top-level folder name respectively.
    """

    def __init__(self, extensions: Iterable[str] = DEFAULT_EXTENSIONS,
                 max_bytes: int = MAX_SUBMISSION_BYTES):
        self.extensions = {e.lower() if e.startswith('.') else f".{e.lower()}" for e in extensions}
        self.max_bytes = max_bytes

    def load_directory(self, directory: str, assignment_id: int = 0) -> List[Submission]:
        """Load every matching file under a directory"""
        root = Path(directory)
        if not root.is_dir():
            raise ValueError(f"Directory not found: {directory}")

        paths = sorted(p for p in root.rglob('*') if p.is_file() and p.suffix.lower() in self.extensions)
        logger.info(f"Found {len(paths)} candidate files in {root}")

        submissions = []
        student_ids: Dict[str, int] = {}
        for path in paths:
            student_name = self._student_name(root, path)
            student_id = student_ids.setdefault(student_name, len(student_ids) + 1)
            submission = self.load_file(
                str(path),
                submission_id=len(submissions) + 1,
                student_id=student_id,
                assignment_id=assignment_id,
                student_name=student_name,
                display_name=str(path.relative_to(root))
            )
            if submission:
                submissions.append(submission)

        logger.info(f"Loaded {len(submissions)} submissions from {len(student_ids)} students")
        return submissions

    def load_file(self, filepath: str, submission_id: int, student_id: Optional[int] = None,
                  assignment_id: int = 0, student_name: str = "",
                  display_name: Optional[str] = None) -> Optional[Submission]:
        """Load one file; returns None for empty or oversized files"""
        path = Path(filepath)
        size = path.stat().st_size
        if size > self.max_bytes:
            logger.warning(f"Skipping {path}: {size} bytes exceeds limit of {self.max_bytes}")
            return None

        code = path.read_bytes().decode('utf-8', errors='replace')
        if not code.strip():
            logger.warning(f"Skipping empty file: {path}")
            return None

        return Submission(
            id=submission_id,
            student_id=submission_id if student_id is None else student_id,
            assignment_id=assignment_id,
            file_name=display_name or path.name,
            code_content=code,
            code_hash=compute_code_hash(code),
            status=SubmissionStatus.SUBMITTED,
            submitted_at=int(path.stat().st_mtime * 1000),
            student_name=student_name or path.stem,
            file_size=size
        )

    def _student_name(self, root: Path, path: Path) -> str:
        relative = path.relative_to(root)
        if len(relative.parts) > 1:
            return relative.parts[0]
        return path.stem
