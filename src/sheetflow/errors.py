"""Exception hierarchy for sheetflow."""


class SheetflowError(Exception):
    """Base class for every error raised on purpose by sheetflow."""
    pass


class MissingLevelError(SheetflowError, LookupError):
    """Raised when rules are requested for a level that compiled to zero nodes.

    This is the one loud failure of the core: the rule sheet itself is
    malformed for that level.
    """

    def __init__(self, level: str):
        self.level = level
        super().__init__(f"Rule sheet has no nodes for level {level}")


class SheetError(SheetflowError):
    """Raised when a question or phrase sheet cannot be turned into levels."""
    pass


class SheetLoadError(SheetflowError):
    """Raised when every source of a sheet (remote, cache, local) failed."""
    pass


class ConfigError(SheetflowError):
    """Raised when the configuration file is unreadable or invalid."""
    pass
