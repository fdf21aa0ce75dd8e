from __future__ import annotations

import posixpath


def source_basename(source: str) -> str:
    """Final path segment of ``source`` without its extension."""
    filename = source.split("/")[-1]
    stem, _ = posixpath.splitext(filename)
    return stem


def build_full_destination(source: str, destination_root: str) -> str:
    """Per-job output location: ``<root>/<source file name without extension>``.

    >>> build_full_destination("/a/b/clip.mov", "s3://bucket/out/")
    's3://bucket/out/clip'
    """
    return destination_root.rstrip("/") + "/" + source_basename(source)


__all__ = ["build_full_destination", "source_basename"]
