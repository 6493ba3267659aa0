"""
Image storage paths.

Uploaded images are saved through Django's default storage under a folder
keyed by the item's serial number; the ledger only ever keeps the returned
relative path.
"""
import logging
import os
import re
import uuid

from django.core.files.storage import default_storage

logger = logging.getLogger('backend.core')

MAX_SERIAL_PATH_LENGTH = 120


def sanitize_serial_for_path(serial):
    """Make a serial number (or any string) safe to use as a path segment"""
    if not serial or not isinstance(serial, str):
        return 'unknown'
    trimmed = serial.strip()
    if not trimmed:
        return 'unknown'
    sanitized = re.sub(r'[/\\:*?"<>|]', '_', trimmed)
    sanitized = re.sub(r'\s+', '_', sanitized)
    sanitized = re.sub(r'_+', '_', sanitized).strip('_')
    return sanitized[:MAX_SERIAL_PATH_LENGTH] or 'unknown'


def item_image_base_path(serial):
    """items/{serial}"""
    return f"items/{sanitize_serial_for_path(serial)}"


def item_master_image_path(serial, filename):
    """items/{serial}/{filename}"""
    return f"{item_image_base_path(serial)}/{filename}"


def inward_image_path(serial, filename):
    """items/{serial}/inward/{filename}"""
    return f"{item_image_base_path(serial)}/inward/{filename}"


def unique_filename(original_name, prefix=''):
    """Random file name keeping the upload's extension"""
    extension = os.path.splitext(original_name or '')[1].lower()
    return f"{prefix}{uuid.uuid4().hex}{extension}"


def save_item_image(uploaded_file, serial):
    """Store an item master image and return its relative path"""
    path = item_master_image_path(serial, unique_filename(uploaded_file.name))
    stored_path = default_storage.save(path, uploaded_file)
    logger.debug(f"Stored item image for serial '{serial}' at {stored_path}")
    return stored_path


def save_inward_image(uploaded_file, serial):
    """Store a return (inward) image and return its relative path"""
    path = inward_image_path(serial, unique_filename(uploaded_file.name, prefix='inward-'))
    stored_path = default_storage.save(path, uploaded_file)
    logger.debug(f"Stored inward image for serial '{serial}' at {stored_path}")
    return stored_path


def discard_image(path):
    """Remove a stored image nothing refers to"""
    if path and default_storage.exists(path):
        default_storage.delete(path)
        logger.info(f"Discarded orphaned image {path}")
