"""lingosrs: spaced-repetition scheduling engine for bite-size language lessons."""

from lingosrs.consts import VERSION

__version__ = VERSION
