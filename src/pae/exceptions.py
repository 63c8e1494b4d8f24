"""Custom exceptions for the project alias expander."""


class PaeError(Exception):
    """Base exception for pae errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigNotFoundError(PaeError):
    """Raised when config file cannot be found."""

    def __init__(self, path: str | None = None):
        message = f"Config file not found{': ' + path if path else ''}"
        super().__init__(message)
        self.path = path


class InvalidConfigError(PaeError):
    """Raised when config file has invalid format or content."""

    def __init__(
        self,
        path: str,
        key: str | None = None,
        message: str = "Invalid config format",
    ):
        full_message = f"Invalid config in {path}"
        if key:
            full_message += f" at '{key}'"
        full_message += f": {message}"
        super().__init__(full_message)
        self.path = path
        self.key = key


class UnknownAliasError(PaeError):
    """Raised when a token matches none of the alias tables."""

    def __init__(self, alias: str):
        super().__init__(f"Unknown alias: {alias}")
        self.alias = alias


class FlagParseError(PaeError):
    """Raised when a flag token cannot be parsed."""

    def __init__(self, flag: str, message: str):
        super().__init__(f"Failed to parse flag '{flag}': {message}")
        self.flag = flag


class ProcessTimeoutError(PaeError):
    """Raised when a child process exceeds its timeout."""

    def __init__(self, command: str, timeout_ms: int):
        super().__init__(f"Command timed out after {timeout_ms}ms: {command}")
        self.command = command
        self.timeout_ms = timeout_ms


class ProcessNonZeroExitError(PaeError):
    """Raised when a child process exits with a non-zero status."""

    def __init__(self, command: str, exit_code: int, stderr: str = ""):
        message = f"Command execution failed: {command} (exit code: {exit_code})"
        if stderr:
            message += f"\nError output: {stderr}"
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class ProcessSpawnError(PaeError):
    """Raised when a child process cannot be started."""

    def __init__(self, command: str, cause: BaseException):
        super().__init__(f"Failed to start '{command}': {cause}")
        self.command = command
        self.cause = cause


class PoolShutdownError(PaeError):
    """Raised when work is submitted to a pool that is shutting down."""

    def __init__(self):
        super().__init__("Process pool is shutting down, cannot execute new commands")
