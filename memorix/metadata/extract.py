import json
import logging
import os
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Optional, Dict, Any, List

import exifread
from PIL import Image
from pymediainfo import MediaInfo

from .. import config
from ..exceptions import MetadataExtractionError
from ..models import MediaKind, MediaRecord, PhotoMetadata, VideoMetadata


def ratio_to_float(value) -> Optional[float]:
    """
    Converts an EXIF rational (exifread Ratio, Fraction, or (num, den) pair)
    to a float. Returns None when the denominator is zero or the value is
    not a rational at all.
    """
    if isinstance(value, tuple) and len(value) == 2:
        num, den = value
    elif hasattr(value, 'num') and hasattr(value, 'den'):
        num, den = value.num, value.den
    elif hasattr(value, 'numerator') and hasattr(value, 'denominator'):
        num, den = value.numerator, value.denominator
    elif isinstance(value, (int, float)):
        return float(value)
    else:
        return None

    try:
        if not den:
            return None
        return float(num) / float(den)
    except (TypeError, ValueError):
        return None


def parse_frame_rate(text) -> Optional[float]:
    """
    Parses a frame rate given as "num/den" (ffprobe) or a plain decimal
    (MediaInfo). "0/0" and other zero denominators yield None.
    """
    if text is None:
        return None
    text = str(text).strip()
    if not text:
        return None
    try:
        if '/' in text:
            num, den = text.split('/', 1)
            den_f = float(den)
            if den_f == 0:
                return None
            rate = float(num) / den_f
        else:
            rate = float(text)
    except ValueError:
        return None
    return rate if rate > 0 else None


class MetadataExtractor:
    """
    Unified interface for extracting metadata from media files.

    Strategies:
      - Images: 'exifread' for the EXIF block, Pillow for the pixel size
        (header only, the pixel buffer is never decoded).
      - Video: 'ffprobe' (stream level JSON) -> falls back to 'pymediainfo'
        when ffprobe is not installed.
    """

    def extract(self, path: Path, kind: MediaKind) -> MediaRecord:
        """Builds a MediaRecord for `path`, raising MetadataExtractionError on failure."""
        path = Path(path)
        st = self._stat(path)
        modified = datetime.fromtimestamp(st.st_mtime)
        ext = path.suffix.lower()

        photo = None
        video = None
        created = modified
        if kind == MediaKind.PHOTO:
            photo = self.extract_photo(path)
            if photo.date_shot:
                created = photo.date_shot
        elif kind == MediaKind.VIDEO:
            video = self.extract_video(path)
        else:
            raise MetadataExtractionError(f"unsupported media kind {kind!r} for {path}")

        return MediaRecord(
            title=path.name,
            path=path,
            size=st.st_size,
            modified=modified,
            created=created,
            kind=MediaKind(kind),
            ext=ext,
            mime_type=config.MIME_BY_EXT.get(ext),
            photo=photo,
            video=video,
        )

    def extract_photo(self, path: Path) -> PhotoMetadata:
        """
        Extracts capture details from an image file.

        A missing EXIF block or any missing tag leaves fields unset. Raises
        MetadataExtractionError only if the file cannot be read or its
        header is not a decodable image.
        """
        path = Path(path)
        self._stat(path)

        meta = PhotoMetadata()
        meta.width, meta.height = self._image_size(path)

        tags = self._read_exif(path)
        if tags:
            self._apply_exif(meta, tags)
        return meta

    def extract_video(self, path: Path) -> VideoMetadata:
        """
        Extracts stream details from a video file.

        Only the first video stream and the first audio stream are used.
        """
        path = Path(path)
        self._stat(path)

        # Strategy 1: ffprobe (stream level, rational frame rates)
        try:
            data = self._probe_ffprobe(path)
        except FileNotFoundError:
            logging.debug(f"{config.FFPROBE_BIN} not found, using MediaInfo for {path}")
        else:
            return self._video_from_ffprobe(data)

        # Strategy 2: MediaInfo
        return self._video_from_mediainfo(path)

    # --- Internal Extraction Helpers ---

    def _stat(self, path: Path) -> os.stat_result:
        try:
            return path.stat()
        except OSError as e:
            raise MetadataExtractionError(f"error getting file info for {path}: {e}") from e

    def _image_size(self, path: Path):
        """Reads the pixel size from the image header."""
        try:
            # Image.open only parses the header; pixels load lazily and we never ask
            with Image.open(path) as img:
                return img.size
        except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
            raise MetadataExtractionError(f"failed to decode image header for {path}: {e}") from e

    def _read_exif(self, path: Path) -> Dict[str, Any]:
        try:
            with path.open('rb') as f:
                # details=False skips maker notes and thumbnails
                return exifread.process_file(f, details=False)
        except Exception as e:
            logging.debug(f"ExifRead failed for {path}: {e}")
            return {}

    def _apply_exif(self, meta: PhotoMetadata, tags) -> None:
        meta.date_shot = self._parse_exif_date(tags)
        meta.latitude, meta.longitude = self._parse_gps(tags)

        meta.maker = self._tag_str(tags, 'Image Make')
        meta.camera = self._tag_str(tags, 'Image Model')
        meta.lens = self._tag_str(tags, 'EXIF LensModel')
        for tag in config.DESCRIPTION_TAGS:
            meta.description = self._tag_str(tags, tag)
            if meta.description:
                break

        meta.exposure = self._tag_ratio(tags, 'EXIF ExposureTime')
        meta.aperture = self._tag_ratio(tags, 'EXIF FNumber')
        meta.focal_length = self._tag_ratio(tags, 'EXIF FocalLength')

        iso = self._tag_int(tags, 'EXIF ISOSpeedRatings')
        if iso is None:
            iso = self._tag_int(tags, 'EXIF PhotographicSensitivity')
        meta.iso = float(iso) if iso is not None else None

        wb = self._tag_int(tags, 'EXIF WhiteBalance')
        meta.white_balance = str(wb) if wb is not None else None

        meta.flash = self._tag_int(tags, 'EXIF Flash')
        if meta.flash is not None:
            # Bit 0 of the flash code is "flash fired"
            meta.flash_fired = bool(meta.flash & 1)

        meta.orientation = self._tag_int(tags, 'Image Orientation')
        meta.exposure_program = self._tag_int(tags, 'EXIF ExposureProgram')

    def _first_value(self, tags, name: str):
        tag = tags.get(name)
        if tag is None:
            return None
        values = getattr(tag, 'values', tag)
        if isinstance(values, (list, tuple)):
            return values[0] if values else None
        return values

    def _tag_str(self, tags, name: str) -> Optional[str]:
        tag = tags.get(name)
        if tag is None:
            return None
        value = str(tag).strip().strip('\x00').strip()
        return value or None

    def _tag_int(self, tags, name: str) -> Optional[int]:
        value = self._first_value(tags, name)
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError, ZeroDivisionError):
            return None

    def _tag_ratio(self, tags, name: str) -> Optional[float]:
        return ratio_to_float(self._first_value(tags, name))

    def _parse_exif_date(self, tags) -> Optional[datetime]:
        """Helper to parse standard EXIF date strings from exifread."""
        for tag in config.DATE_TAGS:
            if tag in tags:
                try:
                    # EXIF format is usually "YYYY:MM:DD HH:MM:SS"
                    dt_str = str(tags[tag]).strip().replace(':', '-', 2)
                    return datetime.strptime(dt_str, "%Y-%m-%d %H:%M:%S")
                except ValueError:
                    continue
        return None

    def _parse_gps(self, tags):
        lat = self._gps_coordinate(tags, 'GPS GPSLatitude', 'GPS GPSLatitudeRef', 'S')
        lon = self._gps_coordinate(tags, 'GPS GPSLongitude', 'GPS GPSLongitudeRef', 'W')
        if lat is None or lon is None:
            return None, None
        return lat, lon

    def _gps_coordinate(self, tags, name: str, ref_name: str, negative_ref: str) -> Optional[float]:
        tag = tags.get(name)
        values = getattr(tag, 'values', None)
        if not values or len(values) != 3:
            return None
        parts = [ratio_to_float(v) for v in values]
        if any(p is None for p in parts):
            return None
        degrees, minutes, seconds = parts
        coord = degrees + minutes / 60.0 + seconds / 3600.0
        ref = self._tag_str(tags, ref_name)
        if ref and ref.upper().startswith(negative_ref):
            coord = -coord
        return coord

    def _probe_ffprobe(self, path: Path) -> Dict[str, Any]:
        """
        Wraps the 'ffprobe' command line utility.
        Raises FileNotFoundError when ffprobe itself is not installed.
        """
        cmd = [
            config.FFPROBE_BIN,
            "-v", "error",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            str(path),
        ]
        try:
            out = subprocess.check_output(
                cmd, stderr=subprocess.PIPE, text=True, timeout=config.FFPROBE_TIMEOUT
            )
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or '').strip() or f"exit status {e.returncode}"
            raise MetadataExtractionError(f"ffprobe error for {path}: {detail}") from e
        except subprocess.TimeoutExpired as e:
            raise MetadataExtractionError(f"ffprobe timed out for {path}") from e

        try:
            return json.loads(out or "{}")
        except json.JSONDecodeError as e:
            raise MetadataExtractionError(f"unreadable ffprobe output for {path}: {e}") from e

    def _video_from_ffprobe(self, data: Dict[str, Any]) -> VideoMetadata:
        meta = VideoMetadata()
        streams: List[Dict[str, Any]] = data.get("streams") or []

        video = next((s for s in streams if s.get("codec_type") == "video"), None)
        audio = next((s for s in streams if s.get("codec_type") == "audio"), None)

        if video:
            meta.width = self._as_int(video.get("width")) or 0
            meta.height = self._as_int(video.get("height")) or 0
            meta.codec = video.get("codec_name") or None
            meta.bit_rate = video.get("bit_rate") or None
            meta.color_profile = video.get("color_space") or None
            meta.frame_rate = (
                parse_frame_rate(video.get("avg_frame_rate")) or
                parse_frame_rate(video.get("r_frame_rate"))
            )
            meta.duration = self._as_float(video.get("duration")) or 0.0

        if not meta.duration:
            # Matroska keeps the duration on the container only
            meta.duration = self._as_float((data.get("format") or {}).get("duration")) or 0.0

        if audio:
            meta.audio_codec = audio.get("codec_name") or None
        return meta

    def _video_from_mediainfo(self, path: Path) -> VideoMetadata:
        """Parses video using pymediainfo."""
        try:
            mi = MediaInfo.parse(str(path))
        except Exception as e:
            raise MetadataExtractionError(f"MediaInfo error for {path}: {e}") from e

        meta = VideoMetadata()
        general = None
        video = None
        audio = None
        for track in mi.tracks:
            if track.track_type == "General" and general is None:
                general = track
            elif track.track_type == "Video" and video is None:
                video = track
            elif track.track_type == "Audio" and audio is None:
                audio = track

        if video is None and audio is None and getattr(general, "format", None) is None:
            raise MetadataExtractionError(f"no media streams found in {path}")

        if video is not None:
            meta.width = self._as_int(getattr(video, "width", None)) or 0
            meta.height = self._as_int(getattr(video, "height", None)) or 0
            meta.codec = getattr(video, "format", None) or None
            meta.frame_rate = parse_frame_rate(getattr(video, "frame_rate", None))
            bit_rate = getattr(video, "bit_rate", None)
            meta.bit_rate = str(bit_rate) if bit_rate else None
            meta.color_profile = (
                getattr(video, "color_space", None) or
                getattr(video, "colour_primaries", None)
            )
            # MediaInfo durations are in milliseconds
            duration_ms = self._as_float(getattr(video, "duration", None))
            if duration_ms:
                meta.duration = duration_ms / 1000.0

        if not meta.duration and general is not None:
            duration_ms = self._as_float(getattr(general, "duration", None))
            if duration_ms:
                meta.duration = duration_ms / 1000.0

        if audio is not None:
            meta.audio_codec = getattr(audio, "format", None) or None
        return meta

    def _as_int(self, value) -> Optional[int]:
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError):
            return None

    def _as_float(self, value) -> Optional[float]:
        try:
            return float(value) if value is not None else None
        except (TypeError, ValueError):
            return None
