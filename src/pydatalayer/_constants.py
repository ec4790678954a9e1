"""Internal constants shared across the library."""

DAY_SECONDS: float = 24 * 60 * 60

STATE_TTL_SECONDS: float = 30 * DAY_SECONDS
FORM_TTL_SECONDS: float = 90 * DAY_SECONDS
RULES_TTL_SECONDS: float = DAY_SECONDS

DEFAULT_STORAGE_PREFIX = "luma"
DEFAULT_RULES_PATH = "/custom-events.json"
DEFAULT_RESUME_DELAY_MS = 100
DEFAULT_PARTNER_DATA: dict[str, object] = {"PartnerID": "Partner456", "BrandLoyalist": 88, "Seasonality": "Fall"}

USER_AGENT = "pydatalayer"


def state_key(prefix: str) -> str:
    """Storage key for the state-tree snapshot."""
    return f"{prefix}_dataLayer"


def form_key(prefix: str) -> str:
    """Storage key for checkout/registration form entries."""
    return f"{prefix}_checkout_data"


def rules_key(prefix: str) -> str:
    """Storage key for the cached trigger rule set."""
    return f"{prefix}_customEventsConfig"
