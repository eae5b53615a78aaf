"""bmcfan - cron-driven fan control for remote servers through their BMCs."""

__version__ = "0.1.0"
