class ExtractionError(Exception):
    """Base class for every error raised while extracting a document."""

    def __init__(self, message: str = None, *, cause: Exception = None):
        super().__init__(message)
        self.__cause__ = cause


class ExtractionFileFormatNotSupportedError(ExtractionError):
    """Raised when the file format for extraction is not supported."""

    def __init__(self, file_path: str, message: str = None, *, cause: Exception = None):
        self.file_path = file_path
        if message is None:
            message = f"Extraction file format not supported: {file_path}"
        super().__init__(message, cause=cause)


class ExtractionFileEncryptedError(ExtractionError):
    """Raised when the document is encrypted or password-protected."""


class LegacyMicrosoftParsingError(ExtractionError):
    """Raised when a legacy binary Word document cannot be parsed."""


class ContainerUnreadableError(LegacyMicrosoftParsingError):
    """The OLE container could not be opened or indexed."""


class MalformedHeaderError(LegacyMicrosoftParsingError):
    """The FIB is absent, truncated or internally inconsistent."""


class TableStreamMissingError(LegacyMicrosoftParsingError):
    """The table stream selected by the FIB is not in the container."""


class InvalidPieceTableError(LegacyMicrosoftParsingError):
    """The CLX holds a structurally inconsistent piece table."""


class PieceRangeOutOfBoundsError(LegacyMicrosoftParsingError):
    """A piece maps to bytes beyond the end of the WordDocument stream."""


class ShortReadError(LegacyMicrosoftParsingError):
    """A read of a declared byte range returned fewer bytes than required."""
