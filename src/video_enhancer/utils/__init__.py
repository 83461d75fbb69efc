"""Utility modules for video enhancer.

This package provides command execution, file helpers and shared
constants. Import from the submodules directly:

    >>> from video_enhancer.utils.command_runner import FFprobeRunner
    >>> from video_enhancer.utils.file_utils import safe_delete
"""
