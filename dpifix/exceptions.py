# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Exception classes for dpifix

This module defines custom exceptions for the dpifix library.
Only UnsupportedFormatError is meant to reach callers of the
high-level functions; the others are caught, logged and turned
into a "no output" result.

Copyright 2025 DNAi inc.
"""


class DpiFixError(Exception):
    """
    Base exception for all dpifix errors.

    All dpifix exceptions inherit from this class, allowing
    catch-all error handling for any density-related errors.
    """
    def __init__(self, message: str = ""):
        """
        Initialize the exception with an optional error message.

        Args:
            message: Descriptive error message explaining what went wrong
        """
        self.message = message
        super().__init__(message)


class UnsupportedFormatError(DpiFixError):
    """
    Raised when the image is neither JPEG nor PNG.

    This exception is raised when:
    - The codec reports a format other than JPEG or PNG (e.g. BMP, GIF)
    - A density operation is asked for an unsupported format tag
    """
    pass


class MetadataReadError(DpiFixError):
    """
    Raised when metadata cannot be read from a file.

    This exception is raised when:
    - The file cannot be decoded by the codec (corrupt or truncated)
    - A segment or chunk structure cannot be parsed
    - A density attribute does not hold an integer
    """
    pass


class MetadataWriteError(DpiFixError):
    """
    Raised when adjusted metadata cannot be written back.
    """
    pass


class MalformedMetadataTreeError(MetadataWriteError):
    """
    Raised when a merge or set-from-tree operation rejects a subtree.

    This exception is raised when:
    - The subtree root does not carry the expected format name
    - A merge node has an unknown name
    - A density attribute cannot be interpreted
    """
    pass


class EncodeInstabilityError(MetadataWriteError):
    """
    Raised when the image encoder fails while writing the output file.

    The failure comes from the encoder library or its environment rather
    than from the metadata being written; the original error is chained
    as __cause__.
    """
    pass
