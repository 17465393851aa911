"""gridware exception hierarchy

Every failure the engine reports derives from GridwareError so
the CLI can print one line and exit non-zero. Recoverable per-item conditions
(an already imported tagging, a denied distro package) are returned as
outcomes instead and only escalate to these when the whole operation fails.
"""

from __future__ import annotations


class GridwareError(Exception):
    """Base class for gridware errors"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(GridwareError):
    """Configuration missing, conflicting or naming an unknown distro"""

    code = "CONFIG_ERROR"


class ValidationError(GridwareError):
    """Invalid user input or selection"""

    code = "VALIDATION_ERROR"


class NotFoundError(GridwareError):
    """Archive, repository, definition, depot or distro package absent"""

    code = "NOT_FOUND"


class PermissionDeniedError(GridwareError):
    """Unwritable path or distro install denied by policy"""

    code = "PERMISSION_DENIED"


class IncompatibleEnvironmentError(GridwareError):
    """Archive built for a different distribution"""

    code = "INCOMPATIBLE_ENVIRONMENT"


class AlreadyExistsError(GridwareError):
    """Target already present; callers usually treat this as a skip"""

    code = "ALREADY_EXISTS"


class UnresolvableError(GridwareError):
    """Runtime requirement still missing after attempted install"""

    code = "UNRESOLVABLE"

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class ExternalCommandError(GridwareError):
    """Download, extraction, install or script subprocess failed"""

    code = "EXTERNAL_COMMAND_FAILED"


class AmbiguousError(GridwareError):
    """Query matched several definitions or packages"""

    code = "AMBIGUOUS"

    def __init__(self, message: str, candidates: list[str] | None = None) -> None:
        super().__init__(message)
        self.candidates = candidates or []


class PackageError(GridwareError):
    """Malformed archive or definition"""

    code = "PACKAGE_ERROR"


class DepotError(GridwareError):
    """Depot operation failed"""

    code = "DEPOT_ERROR"


class RelocationError(GridwareError):
    """Depot path cannot be patched into a binary without resizing it"""

    code = "RELOCATION_ERROR"
