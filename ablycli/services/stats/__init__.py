"""Live and one-shot stats: Control API polling plus dashboard rendering."""

from ablycli.services.stats.display import StatsDisplay, render_stats_interval
from ablycli.services.stats.poller import StatsPoller, stats_timer

__all__ = ["StatsDisplay", "StatsPoller", "render_stats_interval", "stats_timer"]
