"""Meta metrics: how the exporter itself is doing, as opposed to how the modem is doing.

These live in the default registry and are exported next to the modem stats.
"""

from prometheus_client import Counter, Summary, disable_created_metrics

# By default, client will automatically create a "_created" meta metric for
#   each metric defined below.
# Having the unix epoch time of when the metric was created isn't that useful for us
#   so we'll disable it.
disable_created_metrics()

META_NS = "meta"

# summary comes with both a count and a sum so we don't need to count the number of scrapes ourselves
s_meta_scrape_time = Summary(
    f"{META_NS}_request_duration_seconds",
    "Time spent waiting for modem to respond",
    # Only a handful of endpoints so we can index by them
    labelnames=["scrape_target"],
)

# Bounded by the endpoints we hit and the handful of HTTP codes the modem returns.
# Transport errors have no HTTP code; they are counted with http_code="error".
c_meta_scrape_result = Counter(
    f"{META_NS}_scrape_result",
    "Count of successful vs failed scrapes",
    labelnames=["http_code", "scrape_target"],
)

c_meta_parse_result = Counter(
    f"{META_NS}_parse_result",
    "Count of successful vs failed parse attempts",
    labelnames=["parse_target", "parse_result"],
)

c_meta_loki_push_result = Counter(
    f"{META_NS}_loki_push_result",
    "Count of successful vs failed pushes to Loki",
    labelnames=["result"],
)

c_meta_loki_pushed_entries = Counter(
    f"{META_NS}_loki_pushed_entries",
    "Count of event log entries confirmed delivered to Loki",
)
