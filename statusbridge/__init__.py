"""Mirror a scrobbling service's now-playing track into a chat status."""

__version__ = "0.1.0"
