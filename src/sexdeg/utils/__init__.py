"""Shared helpers for writing analysis outputs."""

from sexdeg.utils.fileio import atomic_write_json, atomic_write_frame

__all__ = ['atomic_write_json', 'atomic_write_frame']
