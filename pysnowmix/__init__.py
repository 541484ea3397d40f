"""pysnowmix Python Package

Python library for controlling a Snowmix video and audio mixer.
"""

from pysnowmix.collection import SnowmixItemCollection
from pysnowmix.exceptions import SnowmixConnectionError, SnowmixError, SnowmixTimeoutError
from pysnowmix.item import SnowmixItem
from pysnowmix.snowmix import Snowmix

__all__ = [
    "Snowmix",
    "SnowmixItem",
    "SnowmixItemCollection",
    "SnowmixError",
    "SnowmixConnectionError",
    "SnowmixTimeoutError",
]
