"""icsfeed_lite - expands iCalendar feeds into concrete event occurrences.

Takes raw ICS text plus a time window and returns one OutputEvent per
occurrence whose start falls inside the window, with recurrence rules,
EXDATE exclusions and RECURRENCE-ID overrides applied.
"""

__version__ = "0.1.0"

from .config_loader import Config, load_config
from .lite_logging import configure_lite_logging, feed_context
from .lite_models import ExpansionResult, ExpansionWindow, LiteOutputStatus, OutputEvent
from .pipeline import default_window, expand_feed, expand_feed_with_stats, preview_feed
from .worker_pool import FeedExpansionPool

__all__ = [
    "Config",
    "ExpansionResult",
    "ExpansionWindow",
    "FeedExpansionPool",
    "LiteOutputStatus",
    "OutputEvent",
    "__version__",
    "configure_lite_logging",
    "default_window",
    "expand_feed",
    "expand_feed_with_stats",
    "feed_context",
    "load_config",
    "preview_feed",
]
