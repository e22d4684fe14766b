"""WordPress container entrypoint.

The public helpers of :pymod:`entrypoint.entrypoint` are available at
package level, e.g. ``entrypoint.resolve_settings``.
"""

from entrypoint.entrypoint import *  # noqa: F401,F403
from entrypoint.entrypoint import __all__  # noqa: F401
