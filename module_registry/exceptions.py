"""Custom exception classes for the module registry."""


class RegistryException(Exception):
    """Base exception for all registry errors.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP-equivalent status code for the request layer.
    """

    def __init__(self, message: str, status_code: int = 500) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message.
            status_code: HTTP-equivalent status code for the request layer.
        """
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class UnknownModuleError(RegistryException):
    """Raised when a requested module does not exist."""

    def __init__(self, module_id: str) -> None:
        """Initialize the exception.

        Args:
            module_id: ID of the module that was not found.
        """
        super().__init__(
            message=f"Module '{module_id}' not found",
            status_code=404,
        )
        self.module_id = module_id


class VersionNotFoundError(RegistryException):
    """Raised when a requested module version does not exist."""

    def __init__(self, module_id: str, version: str) -> None:
        """Initialize the exception.

        Args:
            module_id: ID of the module.
            version: Version that was not found.
        """
        super().__init__(
            message=f"Version '{version}' of module '{module_id}' not found",
            status_code=404,
        )
        self.module_id = module_id
        self.version = version


class InstallationNotFoundError(RegistryException):
    """Raised when a user has no installation of a module."""

    def __init__(self, user_id: str, module_id: str) -> None:
        super().__init__(
            message=f"Installation of module '{module_id}' for user '{user_id}' not found",
            status_code=404,
        )
        self.user_id = user_id
        self.module_id = module_id


class DuplicateModuleError(RegistryException):
    """Raised when a (name, version) pair is already registered."""

    def __init__(self, name: str, version: str) -> None:
        """Initialize the exception.

        Args:
            name: Module name.
            version: Module version.
        """
        super().__init__(
            message=f"Module '{name}@{version}' already exists",
            status_code=409,
        )
        self.name = name
        self.version = version


class VersionAlreadyExistsError(RegistryException):
    """Raised when publishing a version that is already recorded."""

    def __init__(self, module_id: str, version: str) -> None:
        """Initialize the exception.

        Args:
            module_id: ID of the module.
            version: Version that already exists.
        """
        super().__init__(
            message=f"Version '{version}' of module '{module_id}' already exists",
            status_code=409,
        )
        self.module_id = module_id
        self.version = version


class DuplicateInstallationError(RegistryException):
    """Raised when an installation record already exists for a user and module."""

    def __init__(self, user_id: str, module_id: str) -> None:
        super().__init__(
            message=f"Module '{module_id}' is already installed for user '{user_id}'",
            status_code=409,
        )
        self.user_id = user_id
        self.module_id = module_id


class InvalidVersionFormatError(RegistryException):
    """Raised when a version or version range cannot be parsed."""

    def __init__(self, value: str, kind: str = "version") -> None:
        """Initialize the exception.

        Args:
            value: The offending input.
            kind: Either "version" or "range".
        """
        super().__init__(
            message=f"Invalid {kind} format: '{value}'",
            status_code=400,
        )
        self.value = value
        self.kind = kind


class VersionNotGreaterError(RegistryException):
    """Raised when a published version does not exceed the current one."""

    def __init__(self, version: str, current_version: str) -> None:
        """Initialize the exception.

        Args:
            version: Version that was published.
            current_version: The module's current version.
        """
        super().__init__(
            message=(
                f"New version '{version}' must be greater than "
                f"current version '{current_version}'"
            ),
            status_code=409,
        )
        self.version = version
        self.current_version = current_version


class InvalidLifecycleTransitionError(RegistryException):
    """Raised when a review or version state change is not allowed."""

    def __init__(self, action: str, state: str, target: str = "module") -> None:
        """Initialize the exception.

        Args:
            action: The attempted lifecycle action.
            state: The current state.
            target: What the action was applied to.
        """
        super().__init__(
            message=f"Cannot {action} {target} in state '{state}'",
            status_code=409,
        )
        self.action = action
        self.state = state


class VersionYankedError(RegistryException):
    """Raised when a yanked version is requested for a new installation."""

    def __init__(self, module_id: str, version: str) -> None:
        super().__init__(
            message=f"Version '{version}' of module '{module_id}' has been yanked",
            status_code=409,
        )
        self.module_id = module_id
        self.version = version


class InvalidRatingError(RegistryException):
    """Raised when a rating is outside the accepted range."""

    def __init__(self, rating: object) -> None:
        super().__init__(
            message=f"Rating must be between 0 and 5, got {rating!r}",
            status_code=400,
        )
        self.rating = rating


class ValidationError(RegistryException):
    """Raised when input validation fails."""

    def __init__(self, message: str, field: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Error message describing the validation failure.
            field: The field that failed validation.
        """
        super().__init__(message=message, status_code=400)
        self.field = field
