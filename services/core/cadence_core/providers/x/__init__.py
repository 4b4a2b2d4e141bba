"""X (formerly Twitter) provider."""

from cadence_core.providers.x.adapter import XAdapter
from cadence_core.providers.x.synthetic import SyntheticContentGenerator

__all__ = ["SyntheticContentGenerator", "XAdapter"]
