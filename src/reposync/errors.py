class ConfigError(Exception):
    """Raised when the job list or daemon settings cannot be used to start."""


class SecretResolutionError(ConfigError):
    """Raised when a ``metadata:`` value cannot be resolved."""
