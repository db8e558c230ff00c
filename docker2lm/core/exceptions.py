from typing import Optional, Dict, Any


class AppException(Exception):
    def __init__(
        self,
        message: str,
        code: str = "APP_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(AppException):
    def __init__(self, message: str = "Invalid configuration", code: str = "CONFIG_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, details)


class MissingConfigSectionError(ConfigurationError):
    def __init__(self, section: str):
        super().__init__(
            f"Missing required config section: {section}",
            "MISSING_CONFIG_SECTION",
            {"section": section}
        )


class MissingApiKeyError(ConfigurationError):
    def __init__(self):
        super().__init__("Config: missing apikey!", "MISSING_API_KEY")


class RecordParseError(AppException):
    def __init__(self, kind: str, message: str):
        super().__init__(
            f"Could not parse {kind}: {message}",
            "RECORD_PARSE_ERROR",
            {"kind": kind}
        )


class ExternalServiceError(AppException):
    pass


class DockerConnectionError(ExternalServiceError):
    def __init__(self, message: str = "Failed to connect to Docker daemon"):
        super().__init__(message, "DOCKER_CONNECTION_ERROR")


class DockerOperationError(ExternalServiceError):
    def __init__(self, operation: str, message: str):
        super().__init__(
            f"Docker operation '{operation}' failed: {message}",
            "DOCKER_OPERATION_ERROR",
            {"operation": operation}
        )


class DockerStreamError(ExternalServiceError):
    def __init__(self, message: str = "Docker stream processing failed"):
        super().__init__(message, "DOCKER_STREAM_ERROR")

