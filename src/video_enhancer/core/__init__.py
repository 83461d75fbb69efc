"""Core module for transcode job management.

This module provides the job manager, the progress store and the status
resolver, along with configuration, logging and type definitions.

Note:
    To avoid circular imports, import from the submodules directly:
    >>> from video_enhancer.core.job_manager import JobManager
    >>> from video_enhancer.core.config import Config
"""
