class ImgArchiveError(Exception):
    """Base class for imgarchive errors."""


# Table/container parsing
class ImgFormatError(ImgArchiveError):
    pass


# Entry names
class EntryNameError(ImgArchiveError):
    pass


class NameTooLongError(EntryNameError):
    pass


class DuplicateEntryError(ImgArchiveError):
    pass


class EntryNotFoundError(ImgArchiveError):
    pass


# Writes
class CapacityExceededError(ImgArchiveError):
    pass


# Lifecycle/mode
class ReadOnlyArchiveError(ImgArchiveError):
    pass


class ArchiveClosedError(ImgArchiveError):
    pass
