__version__ = "1.0.0"

from .config import ConfigError, load_config, resolve_output, validate_runtime
from .downloader import AcquireError, StreamAcquirer, acquire_tracks
from .ffmpeg_pipeline import MergeError, TranscoderProcess, build_merge_command, merge
from .media_source import MediaSource, MediaSourceError, YtDlpMediaSource, select_best
from .models import Config, OutputTarget, StreamCatalog, Track, Variant
from .runner import run_pipeline
from .workspace import WorkspaceError, create_workspace, destroy_workspace, workspace

__all__ = [
    "AcquireError",
    "Config",
    "ConfigError",
    "MediaSource",
    "MediaSourceError",
    "MergeError",
    "OutputTarget",
    "StreamAcquirer",
    "StreamCatalog",
    "Track",
    "TranscoderProcess",
    "Variant",
    "WorkspaceError",
    "YtDlpMediaSource",
    "acquire_tracks",
    "build_merge_command",
    "create_workspace",
    "destroy_workspace",
    "load_config",
    "merge",
    "resolve_output",
    "run_pipeline",
    "select_best",
    "validate_runtime",
    "workspace",
]
