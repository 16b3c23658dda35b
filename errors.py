"""
Exceptions raised by the image finder.

All of them are precondition failures reported before any search work starts;
an empty result is never an error.
"""


class ImageFinderError(Exception):
    """Base class for image finder errors."""


class SourceNotSetError(ImageFinderError, RuntimeError):
    """find() was called before a source raster was set."""


class SizeConstraintError(ImageFinderError, ValueError):
    """A raster is empty or larger than the source or the working-size limits allow."""


class RasterFormatError(ImageFinderError, ValueError):
    """A raster is not a (height, width, 3) uint8 array."""
