# vimshottari/utils/metrics.py
from __future__ import annotations

from typing import Final

from prometheus_client import Counter, Gauge, Histogram

# Keep names stable; dashboards key on them.
MET_REQUESTS: Final = Counter("dasha_api_requests_total", "API requests", ["route"])
REQ_LATENCY: Final = Histogram("dasha_request_seconds", "API request latency", ["route"])
MET_TIMELINES: Final = Counter("dasha_timelines_built_total", "Timelines built", ["eager_level"])
MET_EXPANSIONS: Final = Counter("dasha_branch_expansions_total", "Lazy branch expansions", ["level"])
MET_INPUT_ERRORS: Final = Counter("dasha_input_errors_total", "Rejected birth inputs", ["kind"])
GAUGE_APP_UP: Final = Gauge("dasha_app_up", "1 if app is running")
