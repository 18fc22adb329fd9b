"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=401, details=details)


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password"""
    def __init__(self):
        super().__init__("Invalid email or password")


class AccountLockedError(AuthenticationError):
    """Account is locked due to failed login attempts"""
    def __init__(self, locked_until: str):
        super().__init__(
            f"Account is locked until {locked_until}",
            details={"locked_until": locked_until}
        )


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message, status_code=403)


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class ResourceAlreadyExistsError(BaseAPIException):
    """Resource already exists"""
    def __init__(self, resource: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{resource} already exists", status_code=409, details=details)


# Validation Errors
class ValidationError(BaseAPIException):
    """Validation error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, details=details)


# Business Logic Errors
class BusinessLogicError(BaseAPIException):
    """Business logic error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


class CFPClosedError(BusinessLogicError):
    """Submissions are not accepted right now"""
    def __init__(self):
        super().__init__("CFP is not currently open")


class LastAdminError(BusinessLogicError):
    """Operation would leave the platform without an administrator"""


class DuplicateEmailError(BaseAPIException):
    """Email already registered"""
    def __init__(self, email: str):
        super().__init__(f"An account with email '{email}' already exists", status_code=409)


# System Errors
class DatabaseError(BaseAPIException):
    """Database operation failed"""
    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message, status_code=500)


class FileSystemError(BaseAPIException):
    """File system operation failed"""
    def __init__(self, message: str = "File system operation failed"):
        super().__init__(message, status_code=500)


class ConcurrentModificationError(BaseAPIException):
    """Concurrent modification detected"""
    def __init__(self, message: str = "Resource was modified by another request"):
        super().__init__(message, status_code=409)


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, status_code=429)


class EncryptionError(Exception):
    """Encrypted value could not be produced or read"""


# Plugin Errors
class PluginError(BaseAPIException):
    """Base plugin error"""


class PluginPermissionError(PluginError):
    """Plugin attempted a capability it was not granted"""
    def __init__(self, permission: str):
        self.permission = permission
        super().__init__(
            f"Plugin permission required: {permission}",
            status_code=403,
            details={"permission": permission}
        )


class PluginNotFoundError(PluginError):
    """Plugin is unknown to the database or registry"""
    def __init__(self, name: str = ""):
        message = f"Plugin not found: {name}" if name else "Plugin not found"
        super().__init__(message, status_code=404)


class PluginVersionError(PluginError):
    """Plugin targets an API version this platform does not provide"""
    def __init__(self, api_version: str):
        super().__init__(
            f"Unsupported API version: {api_version}",
            status_code=400,
            details={"api_version": api_version}
        )


class PluginManifestError(PluginError):
    """Manifest is missing or malformed"""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class PluginArchiveError(PluginError):
    """Archive failed validation or extraction"""
    def __init__(self, errors, status_code: int = 400):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__(
            f"Invalid plugin archive: {'; '.join(self.errors)}",
            status_code=status_code,
            details={"errors": self.errors}
        )


class PluginConflictError(PluginError):
    """A plugin with the same name is already on disk"""
    def __init__(self, name: str, existing_plugin: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Plugin '{name}' already exists. Use force to overwrite.",
            status_code=409,
            details={"exists": True, "existing_plugin": existing_plugin}
        )


class PluginStateError(BusinessLogicError):
    """Lifecycle transition not allowed from current state"""


class PluginExecutionError(PluginError):
    """Plugin code raised while handling a lifecycle call"""
    def __init__(self, message: str = "Plugin failed to execute"):
        super().__init__(message, status_code=500)


class PluginDownloadError(PluginError):
    """Downloading a gallery plugin failed"""
    def __init__(self, message: str = "Failed to download plugin"):
        super().__init__(message, status_code=502)


class PluginDownloadTimeoutError(PluginError):
    """Download took longer than allowed"""
    def __init__(self, message: str = "Plugin download timed out"):
        super().__init__(message, status_code=504)


class GalleryUnavailableError(PluginError):
    """Plugin gallery registry could not be fetched"""
    def __init__(self, message: str = "Plugin gallery is unavailable"):
        super().__init__(message, status_code=502)


class JobHandlerNotFoundError(Exception):
    """No handler registered for a plugin job type"""
    def __init__(self, plugin_id: int, job_type: str):
        self.plugin_id = plugin_id
        self.job_type = job_type
        super().__init__(f"No handler registered for job type '{job_type}' (plugin {plugin_id})")
