"""
Domain constants used across services/routers.
"""

# Read-side tracker step for a cancelled order (no progress bar).
CANCELLED_STEP = -1

# Progress-bar increment per tracker step (5 steps → 100%).
PROGRESS_PER_STEP = 20

# Labels shown under each tracker step, indexed by step.
TRACKER_STEP_LABELS = (
    "Placed",
    "Accepted",
    "Preparing",
    "Ready",
    "Picked Up",
    "Delivered",
)

# Charge metadata keys used to correlate webhooks with orders.
METADATA_ORDER_ID = "order_id"
METADATA_USER_ID = "user_id"
METADATA_USER_NAME = "user_name"

DEFAULT_USER_NAME = "Customer"

# Upper bounds on checkout input; larger values overflow integer cents columns.
MAX_LINE_QUANTITY = 1000
MAX_DELIVERY_FEE = "1000.00"
