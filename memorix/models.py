from dataclasses import dataclass, field, fields, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from . import config
from .exceptions import UnsupportedStorageTypeError


class MediaKind(str, Enum):
    PHOTO = 'photo'
    VIDEO = 'video'


@dataclass
class PhotoMetadata:
    """
    Capture details read from an image's EXIF block and header.
    Every field is optional; a field is set only when its tag decoded.
    """
    date_shot: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    maker: Optional[str] = None
    camera: Optional[str] = None
    lens: Optional[str] = None
    description: Optional[str] = None
    exposure: Optional[float] = None       # seconds
    aperture: Optional[float] = None       # f-number
    iso: Optional[float] = None
    focal_length: Optional[float] = None   # mm
    white_balance: Optional[str] = None
    flash: Optional[int] = None            # raw EXIF flash code
    flash_fired: Optional[bool] = None
    orientation: Optional[int] = None
    exposure_program: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass
class VideoMetadata:
    """
    Stream-level details of the first video and first audio stream.
    """
    width: int = 0
    height: int = 0
    duration: float = 0.0                  # seconds
    codec: Optional[str] = None
    frame_rate: Optional[float] = None
    bit_rate: Optional[str] = None
    color_profile: Optional[str] = None
    audio_codec: Optional[str] = None


@dataclass
class MediaRecord:
    """
    Represents one media file found during a scan.
    Owns exactly one metadata block, selected by `kind`.
    """
    title: str
    path: Path
    size: int
    modified: datetime
    created: datetime
    kind: MediaKind
    ext: str
    mime_type: Optional[str] = None
    photo: Optional[PhotoMetadata] = None
    video: Optional[VideoMetadata] = None

    def __post_init__(self):
        if not str(self.path):
            raise ValueError("MediaRecord requires a source path")
        if self.size < 0:
            raise ValueError(f"negative size for {self.path}: {self.size}")
        if self.kind == MediaKind.PHOTO and self.video is not None:
            raise ValueError("photo records cannot carry video metadata")
        if self.kind == MediaKind.VIDEO and self.photo is not None:
            raise ValueError("video records cannot carry photo metadata")

    @property
    def metadata(self) -> Union[PhotoMetadata, VideoMetadata, None]:
        return self.photo if self.kind == MediaKind.PHOTO else self.video

    def as_dict(self) -> Dict[str, Any]:
        """Flattens the record into a single mapping (for persistence rows/reports)."""
        row: Dict[str, Any] = {
            'title': self.title,
            'path': str(self.path),
            'size': self.size,
            'modified': self.modified,
            'created': self.created,
            'kind': self.kind.value,
            'ext': self.ext,
            'mime_type': self.mime_type,
        }
        meta = self.metadata
        if meta is not None:
            row.update(asdict(meta))
        return row


@dataclass
class ScanWarning:
    """A non-fatal, per-entry failure recorded during a scan."""
    path: Path
    cause: str
    error: Optional[BaseException] = field(default=None, compare=False, repr=False)


@dataclass
class ScanResult:
    root: Path
    records: List[MediaRecord] = field(default_factory=list)
    warnings: List[ScanWarning] = field(default_factory=list)


class StorageType(str, Enum):
    LOCAL = 'local'
    NAS = 'nas'
    OBJECT_STORAGE = 'object-storage'

    @classmethod
    def parse(cls, tag) -> 'StorageType':
        """
        Resolves a configuration tag to a member.
        Raises UnsupportedStorageTypeError naming the tag for anything else.
        """
        if isinstance(tag, cls):
            return tag
        key = str(tag).strip().lower() if tag is not None else ''
        key = _STORAGE_TYPE_ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise UnsupportedStorageTypeError(tag) from None


# Provider names stored in older configurations
_STORAGE_TYPE_ALIASES = {
    'qiniu': 'object-storage',
    's3': 'object-storage',
    'object_storage': 'object-storage',
}


@dataclass(frozen=True)
class StorageConfig:
    """
    A storage destination and its credentials.
    Created by the configuration service; only read here.
    """
    type: str
    name: str = ''
    host: str = ''
    port: int = config.DEFAULT_SSH_PORT
    username: str = ''
    password: str = ''
    access_key: str = ''
    secret_key: str = ''
    bucket: str = ''
    region: str = ''
    endpoint: str = ''
    base_path: str = ''
    default_path: str = ''
    strict_host_key: bool = False
    known_hosts: Optional[str] = None
    timeout: Optional[float] = None

    @property
    def login(self) -> str:
        return self.username or self.name

    @property
    def remote_dir(self) -> str:
        return self.base_path or self.default_path

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'StorageConfig':
        """
        Builds a config from a persistence row or JSON document.
        Keys may be snake_case, camelCase or PascalCase; unknown keys are ignored.
        """
        by_key = {f.name.replace('_', ''): f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = by_key.get(str(key).replace('_', '').lower())
            if name is None or value is None:
                continue
            kwargs[name] = value
        if 'type' not in kwargs:
            raise ValueError("storage config has no type")
        # Rows written without a port carry 0
        if kwargs.get('port'):
            kwargs['port'] = int(kwargs['port'])
        else:
            kwargs.pop('port', None)
        if 'timeout' in kwargs:
            kwargs['timeout'] = float(kwargs['timeout'])
        return cls(**kwargs)
