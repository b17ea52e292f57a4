"""
Firmware image loading.

Reads Intel HEX or raw binary files with the intelhex library, and Motorola
S-record files with bincopy, and turns them into ascending, non-overlapping
ImageRecords.
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional

import bincopy
from intelhex import IntelHex, IntelHexError

from .data import AddressRange, ImageRecord
from .exceptions import ImageError

logger = logging.getLogger(__name__)

IMAGE_TYPES = ("ihex", "srec", "bin")

_EXTENSIONS = {
    ".hex": "ihex",
    ".ihex": "ihex",
    ".ihx": "ihex",
    ".srec": "srec",
    ".mot": "srec",
    ".bin": "bin",
}


def detect_image_type(path) -> Optional[str]:
    """Guess the image type from the file extension (None if unknown)."""
    return _EXTENSIONS.get(Path(path).suffix.lower())


def load_image(path, image_type: Optional[str] = None, base_address: int = 0) -> List[ImageRecord]:
    """
    Load an image file.

    Args:
        path: Image file path
        image_type: "ihex", "srec" or "bin" (None detects from the extension)
        base_address: Load address of a binary image

    Returns:
        Records in ascending address order, one per contiguous segment

    Raises:
        ImageError: If the type is unknown or the file cannot be parsed
    """
    image_type = image_type or detect_image_type(path)
    if image_type not in IMAGE_TYPES:
        raise ImageError(f"Cannot determine image type of {path} (specify it explicitly)")

    if image_type == "srec":
        records = _load_srec(path)
    else:
        ih = IntelHex()
        try:
            if image_type == "ihex":
                ih.loadhex(str(path))
            else:
                ih.loadbin(str(path), offset=base_address)
        except (IntelHexError, OSError) as e:
            raise ImageError(f"Failed to load {path}: {e}") from e

        records = [
            ImageRecord(start, ih.tobinstr(start=start, end=stop - 1))
            for start, stop in ih.segments()
        ]
    logger.info(f"Loaded {image_type} image {path}: "
                f"{sum(len(r.data) for r in records)} bytes in {len(records)} segments")
    return records


def _load_srec(path) -> List[ImageRecord]:
    binfile = bincopy.BinFile()
    try:
        binfile.add_srec_file(str(path))
    except (bincopy.Error, OSError, UnicodeDecodeError) as e:
        raise ImageError(f"Failed to load {path}: {e}") from e

    return [
        ImageRecord(segment.minimum_address, bytes(segment.data))
        for segment in binfile.segments
    ]


def clip_to_areas(records: Iterable[ImageRecord], areas: Iterable[AddressRange]) -> List[ImageRecord]:
    """
    Keep only the parts of records that fall inside areas.

    Dropped bytes are reported with a warning.
    """
    areas = sorted(areas, key=lambda area: area.start)
    clipped = []
    for record in records:
        kept = 0
        for area in areas:
            start = max(record.address, area.start)
            end = min(record.end - 1, area.end)
            if start > end:
                continue
            clipped.append(ImageRecord(start, record.data[start - record.address:end - record.address + 1]))
            kept += end - start + 1
        if kept < len(record.data):
            logger.warning(f"Ignoring {len(record.data) - kept} bytes of {record!r} "
                           f"outside the user area")
    clipped.sort(key=lambda record: record.address)
    return clipped
