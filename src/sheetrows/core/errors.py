class SheetRowsError(Exception):
    """Base error for all user-facing sheetrows exceptions."""


class ConfigurationError(SheetRowsError):
    """Raised when settings or selection bounds are invalid."""


class InputFileError(SheetRowsError):
    """Raised when the input workbook path is missing or not a file."""


class PackageReadError(SheetRowsError):
    """Raised when the spreadsheet package or one of its parts cannot be read."""


class MalformedReferenceError(SheetRowsError):
    """Raised when a row or cell reference carries no row number."""


class SharedStringIndexError(SheetRowsError):
    """Raised when a shared-string index falls outside the table."""
