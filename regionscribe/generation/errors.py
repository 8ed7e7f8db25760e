# regionscribe/generation/errors.py


class RegionScribeError(Exception):
    """Base class for every error raised by the capture and generation pipeline."""


class ValidationError(RegionScribeError):
    """Generation was requested without the inputs it needs. No network call was made."""


class ImageNotReadyError(RegionScribeError):
    """The source image has not been decoded yet, so no pixels can be read from it."""


class CancelledByUser(RegionScribeError):
    """
    The in-flight inference call was aborted by the user.

    Not a real failure: it is never shown as an error, only recorded in the
    text stream as the stop note.
    """


class InferenceError(RegionScribeError):
    """Network failure, non-success status or malformed stream from the inference endpoint."""


class ImageDecodeError(ImageNotReadyError):
    """The image file could not be decoded and never will be."""
