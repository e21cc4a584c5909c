"""Global constants for the application.

Centralizes magic numbers and configuration values.
"""

# =============================================================================
# LLM
# =============================================================================

MAX_LLM_RETRIES = 3  # Transport-level retries per backend call
LLM_MAX_OUTPUT_TOKENS = 2048  # max_tokens sent to every backend
LLM_TEMPERATURE = 0.1  # Low temperature for consistent selectors
CHARS_PER_TOKEN_ESTIMATE = 3  # Conservative (over-)estimate used for budget reservations
COST_ESTIMATE_MARGIN = 1.25  # Headroom on reservations for tokenizer differences


# =============================================================================
# HTML Size Limits
# =============================================================================

MAX_SELECT_OPTIONS = 15  # <option> elements kept per <select> in LLM markup
MIN_FORM_MARKUP_SIZE = 200  # Smaller <form> markup falls back to the whole body


# =============================================================================
# Browser Timeouts (milliseconds)
# =============================================================================

BROWSER_DEFAULT_TIMEOUT = 30_000  # Default page timeout (30s)
BROWSER_NAVIGATION_TIMEOUT = 10_000  # Network idle timeout (10s)
BROWSER_ELEMENT_TIMEOUT = 5_000  # Wait for a single form control
BROWSER_WAIT_SHORT = 500  # Short wait for DOM updates
BROWSER_WAIT_LONG = 2_000  # Wait after page load
BROWSER_WAIT_CF_CHALLENGE = 5_000  # Wait for Cloudflare challenge
BROWSER_VIEWPORT = {"width": 1280, "height": 900}


# =============================================================================
# Verification
# =============================================================================

CONFIRMATION_POLL_INTERVAL = 0.25  # Seconds between confirmation checks


# =============================================================================
# HTTP Status Codes
# =============================================================================

HTTP_CLIENT_ERROR_MIN = 400
HTTP_SERVER_ERROR_MIN = 500
CLOUDFLARE_STATUSES = (403, 503, 520, 521, 522, 523, 524, 525, 526)
