"""Video Enhancer - Background FFmpeg transcoding with pollable job status."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("video-enhancer")
except PackageNotFoundError:
    __version__ = "0.0.0.dev"

__author__ = "Video Enhancer Team"
