"""
Image storage for uploaded ID photos, item pictures and handoff proofs.

Thin wrapper over Django's storage API plus Pillow for reading dimensions.
"""

import logging
import os
import uuid

from django.core.files.storage import default_storage
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


class ImageStore:
    """
    Store, delete and inspect images through a Django storage backend.

    Args:
        storage: Django Storage instance (defaults to default_storage)
    """

    def __init__(self, storage=None):
        self.storage = storage or default_storage

    def store(self, content, folder):
        """
        Save an uploaded file under ``folder`` with a collision-free name.

        Args:
            content: Django File / UploadedFile
            folder: Target folder, e.g. 'verifications'

        Returns:
            str: Storage name of the saved file
        """
        extension = os.path.splitext(getattr(content, 'name', '') or '')[1].lower()
        name = f'{folder}/{uuid.uuid4().hex}{extension}'
        if hasattr(content, 'seek'):
            content.seek(0)
        saved_name = self.storage.save(name, content)
        logger.debug(f"Stored image {saved_name}")
        return saved_name

    def delete(self, name):
        if name:
            self.storage.delete(name)
            logger.debug(f"Deleted image {name}")

    def url(self, name):
        return self.storage.url(name) if name else None

    def read_dimensions(self, content):
        """
        Read pixel dimensions of an image file.

        Args:
            content: File-like object

        Returns:
            tuple: (width, height), or None if the file is not a readable image
        """
        try:
            if hasattr(content, 'seek'):
                content.seek(0)
            with Image.open(content) as image:
                return image.size
        except (UnidentifiedImageError, OSError, ValueError):
            return None
        finally:
            if hasattr(content, 'seek'):
                content.seek(0)