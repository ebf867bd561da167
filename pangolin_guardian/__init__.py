"""Discord bot for monitoring and operating a Pangolin / CrowdSec Docker stack."""

__version__ = "1.0.0"
