"""
nexuspy package initializer.

Public API:
 - Nexus (main client) and create_client (convenience factory)
 - Quota, Dispatcher, RetryCoordinator (the request layer, usable on its own)
 - exceptions (re-exported)
 - typed response models
"""

__all__ = [
    "Nexus", "create_client",
    "Quota", "Dispatcher", "RequestContext", "Outcome", "RetryCoordinator",
    "__version__",
]

__version__ = "0.1.0"

from .exceptions import *  # noqa: F401,F403
from .exceptions import __all__ as _exceptions_all
from .types_models import *  # noqa: F401,F403
from .types_models import __all__ as _types_all

from .client import Nexus, create_client
from .dispatcher import Dispatcher, Outcome, RequestContext
from .quota import Quota
from .retry import RetryCoordinator

__all__ += list(_exceptions_all) + list(_types_all)
