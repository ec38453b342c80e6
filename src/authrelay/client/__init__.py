"""HTTP side of authrelay.

Classes:
    :class:`AuthContext` -- shared credential state for one execution context.
    :class:`RequestPipeline` -- credential attachment and 401 recovery.
    :class:`RefreshCoordinator` -- single-flight refresh and its waiter queue.
    :class:`AuthService`, :class:`TelemetryService` -- resource clients.

Example::

    from authrelay.client import AuthContext, AuthService

    async with AuthContext() as ctx:
        await AuthService(ctx).login("alice", "s3cret")
"""

from authrelay.client.context import AuthContext
from authrelay.client.pipeline import RequestPipeline
from authrelay.client.refresh import PendingCall, RefreshCoordinator
from authrelay.client.services import AuthService, ResourceClient, TelemetryService

__all__ = [
    "AuthContext",
    "AuthService",
    "PendingCall",
    "RefreshCoordinator",
    "RequestPipeline",
    "ResourceClient",
    "TelemetryService",
]
