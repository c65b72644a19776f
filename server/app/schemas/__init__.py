"""Pydantic schemas for request/response validation."""

from .allocation import *  # noqa: F403
from .booking import *  # noqa: F403
from .common import *  # noqa: F403
from .departure import *  # noqa: F403
from .finance import *  # noqa: F403
from .health import *  # noqa: F403
from .payment import *  # noqa: F403
from .vendor_cost import *  # noqa: F403
