"""Exception hierarchy shared by the supervisor, runtime and cycle."""


class TopicwatchError(Exception):
    """Base exception for topicwatch errors."""

    pass


class ConfigMissing(TopicwatchError):
    """Raised when a topic (or its pipeline for a daemon kind) is not configured."""

    pass


class AlreadyRunning(TopicwatchError):
    """Raised when a live daemon already owns the (topic, kind) PID record."""

    pass


class ProcessNotFound(TopicwatchError):
    """Raised when a recorded pid no longer names a live process."""

    pass


class CollaboratorError(TopicwatchError):
    """Raised when a collaborator cannot be imported or constructed."""

    pass
