"""Product analytics: upstream sync, two-tier caching and background jobs."""

from .constants import APP_VERSION as __version__
