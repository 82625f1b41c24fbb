"""
Exceptions shared by all layers.

Expected business-rule failures (not your turn, lobby full, ...) are NOT exceptions: those come back as a `Rejected` value.
Only conditions the caller cannot anticipate use this channel.
"""


class GameError(Exception):
    """Root of every exception raised on purpose by this package."""


class GameStateError(GameError):
    """A stored game state is inconsistent, or an illegal lifecycle transition was requested."""


class InvalidRequestError(GameError):
    """Request data is structurally invalid (raised by the boundary models)."""


class RepositoryError(GameError):
    """Problems reaching or using the persistence layer."""


class NotFoundError(RepositoryError):
    """Lobby / game / request / profile does not exist."""


class StoreUnavailableError(RepositoryError):
    """The store could not complete the operation (connection lost, constraint blew up, ...)."""


class RemoteCallError(GameError):
    """Client side: a call to the backend failed before producing an answer."""
