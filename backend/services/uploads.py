"""Profile picture storage on the local filesystem."""

import logging
import os
import time
from pathlib import Path

from fastapi import HTTPException, UploadFile, status

from backend.core import config

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png')
PUBLIC_PREFIX = '/uploads/'


def upload_dir() -> Path:
    path = Path(config.UPLOAD_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def save_profile_picture(file: UploadFile, directory: Path | None = None) -> str:
    """Store an uploaded image and return its public ``/uploads/...`` path."""
    original_name = os.path.basename(file.filename or '')
    extension = os.path.splitext(original_name)[1].lower()
    if extension not in ALLOWED_IMAGE_EXTENSIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Only images are allowed (.jpg, .jpeg, .png)',
        )

    contents = file.file.read(config.MAX_UPLOAD_BYTES + 1)
    if len(contents) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'File size exceeds {config.MAX_UPLOAD_BYTES // (1024 * 1024)}MB limit.',
        )

    target_dir = directory or upload_dir()
    filename = f'{int(time.time() * 1000)}-{original_name.replace(" ", "_")}'
    target = target_dir / filename
    target.write_bytes(contents)

    logger.info('Saved profile picture %s (%d bytes)', target, len(contents))
    return f'{PUBLIC_PREFIX}{filename}'


def remove_profile_picture(public_path: str | None, directory: Path | None = None) -> None:
    """Delete a previously stored picture. A missing file is not an error."""
    if not public_path or not public_path.startswith(PUBLIC_PREFIX):
        return

    target = (directory or upload_dir()) / os.path.basename(public_path)
    try:
        target.unlink()
    except FileNotFoundError:
        logger.warning('Old profile picture %s was already gone', target)
    except OSError:
        logger.exception('Could not remove old profile picture %s', target)
    else:
        logger.info('Removed old profile picture %s', target)
