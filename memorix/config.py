"""
Configuration constants for memorix.
"""
import os

# --- File Type Definitions ---
PHOTO_EXTS = {'.jpg', '.jpeg', '.png'}
VIDEO_EXTS = {'.mp4', '.mov', '.avi', '.mkv'}

# Extension to Kind Mapping
# Anything missing from this map is ignored by the scanner
EXT_TO_KIND = {}
for ext in PHOTO_EXTS: EXT_TO_KIND[ext] = 'photo'
for ext in VIDEO_EXTS: EXT_TO_KIND[ext] = 'video'

MIME_BY_EXT = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.mp4': 'video/mp4',
    '.mov': 'video/quicktime',
    '.avi': 'video/x-msvideo',
    '.mkv': 'video/x-matroska',
}

# --- Metadata Parsing ---
DATE_TAGS = [
    'EXIF DateTimeOriginal',
    'EXIF DateTimeDigitized',
    'Image DateTime',
]

DESCRIPTION_TAGS = [
    'Image ImageDescription',
    'Image XPTitle',
]

# ffprobe binary used for video probing; pymediainfo is used when it is missing
FFPROBE_BIN = os.environ.get("MEMORIX_FFPROBE", "ffprobe")
FFPROBE_TIMEOUT = 30  # seconds

# --- Storage ---
DEFAULT_SSH_PORT = 22
COPY_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for stream copies

# Qiniu publishes short zone codes; the S3 gateway expects region names
QINIU_REGIONS = {
    'z0': 'cn-east-1',
    'z1': 'cn-north-1',
    'z2': 'cn-south-1',
    'na0': 'us-north-1',
    'as0': 'ap-southeast-1',
}
DEFAULT_OBJECT_STORAGE_REGION = 'auto'
