from __future__ import annotations

import contextlib
import dataclasses
import gzip
import logging
import pathlib
import typing

from .util_baseclasses import UnsupportedFormatError

logger = logging.getLogger(__file__)

GZIP_MAGIC = b"\x1f\x8b"
SUFFIX_UNSUPPORTED = ".zip"
SUFFIXES_IMAGE = (".img", ".gz", ".raw")


@dataclasses.dataclass(frozen=True, repr=True)
class ImageSource:
    """
    An OS image on the local filesystem.

    Gzip compressed images are decompressed transparently by 'open()'.
    Zip archives are rejected when constructed, before any hardware is touched.
    """

    filename: pathlib.Path

    def __post_init__(self) -> None:
        assert isinstance(self.filename, pathlib.Path)
        if self.filename.name.endswith(SUFFIX_UNSUPPORTED):
            raise UnsupportedFormatError(
                f"{self.filename}: zip files are not supported"
            )

    @staticmethod
    def factory(source: ImageSource | pathlib.Path | str) -> ImageSource:
        if isinstance(source, ImageSource):
            return source
        return ImageSource(filename=pathlib.Path(source))

    @property
    def is_gzip(self) -> bool:
        with self.filename.open("rb") as f:
            return f.read(len(GZIP_MAGIC)) == GZIP_MAGIC

    @contextlib.contextmanager
    def open(self) -> typing.Iterator[typing.BinaryIO]:
        """
        Yield the uncompressed byte stream of the image.
        """
        if self.is_gzip:
            logger.debug(f"{self.filename}: gzip, decompressing while streaming")
            with gzip.open(self.filename, "rb") as f:
                yield typing.cast(typing.BinaryIO, f)
            return

        with self.filename.open("rb") as f:
            yield f


def images_in_directory(directory: pathlib.Path) -> list[ImageSource]:
    """
    Return all flashable images in 'directory', sorted by name.
    """
    assert isinstance(directory, pathlib.Path)
    if not directory.is_dir():
        return []
    return [
        ImageSource(filename=filename)
        for filename in sorted(directory.iterdir())
        if filename.is_file() and filename.suffix in SUFFIXES_IMAGE
    ]
