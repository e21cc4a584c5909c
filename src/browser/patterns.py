"""Паттерны для поиска элементов на страницах."""

# Cookie consent buttons (patterns for button text)
COOKIE_ACCEPT_PATTERNS = [
    # English
    r'accept\s*all',
    r'allow\s*all',
    r'agree\s*all',
    r'i\s*accept',
    r'accept\s*cookies',
    r'^\s*accept\s*$',
    r'^\s*got\s*it\s*$',
    # German
    r'alle\s*akzeptieren',
    r'zustimmen',
    # Russian
    r'принять\s*все',
    r'согласен',
]

# CSS селекторы для cookie диалогов
COOKIE_DIALOG_SELECTORS = [
    '[role="alertdialog"] button',
    '[role="dialog"] button',
    '[class*="consent"] button',
    '[class*="cookie"] button',
    '[id*="consent"] button',
    '[id*="cookie"] button',
    '[class*="banner"] button',
]

# Login form controls (boards with requires_auth)
LOGIN_EMAIL_SELECTORS = [
    'input[type="email"]',
    'input[name="email"]',
    'input[name="username"]',
    'input[id*="email"]',
    'input[autocomplete="username"]',
]

LOGIN_PASSWORD_SELECTORS = [
    'input[type="password"]',
    'input[name="password"]',
]

LOGIN_SUBMIT_SELECTORS = [
    'button[type="submit"]',
    'input[type="submit"]',
    'button:has-text("Log in")',
    'button:has-text("Sign in")',
]

# Texts on a Cloudflare / anti-bot interstitial
CLOUDFLARE_CHALLENGE_MARKERS = [
    "Checking your browser",
    "Just a moment",
    "challenges.cloudflare.com",
    "Please Wait...",
    "DDoS protection",
    "Enable JavaScript",
]

# Confirmation text after a successful submit (board markers take precedence)
DEFAULT_SUCCESS_MARKERS = [
    "thank you",
    "successfully",
    "has been posted",
    "has been submitted",
    "has been published",
    "is now live",
]

# Texts meaning the submit was rejected; checked before success markers
ERROR_MARKERS = [
    "is required",
    "please fill",
    "please enter",
    "invalid",
    "error occurred",
    "something went wrong",
    "try again",
]

# URL fragments of error / login pages (a redirect there is not a confirmation)
ERROR_URL_PATTERNS = [
    r'/error',
    r'/404',
    r'/500',
    r'/login',
    r'/signin',
    r'/sign_in',
    r'[?&]error=',
]

# Network error patterns (domain unreachable)
NETWORK_ERROR_PATTERNS = [
    "ERR_NAME_NOT_RESOLVED",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_RESET",
    "ERR_CONNECTION_TIMED_OUT",
    "ERR_NETWORK_CHANGED",
    "ERR_INTERNET_DISCONNECTED",
    "ERR_ADDRESS_UNREACHABLE",
]

# Default User-Agent
DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
