"""Custom exceptions for Maven Assist."""


class MavenAssistError(Exception):
    """Base exception for Maven Assist."""


class PomNotFoundError(MavenAssistError):
    """Raised when a pom.xml file cannot be found."""


class PomParseError(MavenAssistError):
    """Raised when a pom.xml file cannot be parsed."""


class PomModelError(MavenAssistError):
    """Raised when required Maven model fields are missing or invalid."""


class PomWriteError(MavenAssistError):
    """Raised when a modified pom.xml cannot be written back."""


class DependencyNotFoundError(MavenAssistError):
    """Raised when a dependency declaration cannot be located in a pom.xml."""


class ResolverError(MavenAssistError):
    """Raised when the dependency graph cannot be resolved."""


class ClasspathError(MavenAssistError):
    """Raised when the effective classpath cannot be listed."""


class ConfigurationError(MavenAssistError):
    """Raised when the environment holds an invalid setting."""
