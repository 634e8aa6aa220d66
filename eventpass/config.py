import os
from decimal import Decimal
from dotenv import load_dotenv

from eventpass.models.policy import RefundPolicy, PLATFORM_DEFAULT_POLICY

load_dotenv()

# Required: fails fast if missing
API_KEY: str = os.environ["API_KEY"]

APP_ENV: str = os.getenv("APP_ENV", "development")
PORT: int = int(os.getenv("PORT", "8000"))
CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "")
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
DEFAULT_CURRENCY: str = os.getenv("DEFAULT_CURRENCY", "UGX")

# Platform default refund policy, used for events without their own policy
DEFAULT_REFUND_DEADLINE_HOURS: int = int(
    os.getenv("DEFAULT_REFUND_DEADLINE_HOURS", str(PLATFORM_DEFAULT_POLICY.refund_deadline_hours))
)
DEFAULT_FULL_REFUND_HOURS: int = int(
    os.getenv("DEFAULT_FULL_REFUND_HOURS", str(PLATFORM_DEFAULT_POLICY.full_refund_deadline_hours))
)
DEFAULT_PARTIAL_REFUND_HOURS: int = int(
    os.getenv("DEFAULT_PARTIAL_REFUND_HOURS", str(PLATFORM_DEFAULT_POLICY.partial_refund_deadline_hours))
)
DEFAULT_PARTIAL_REFUND_PERCENTAGE: Decimal = Decimal(
    os.getenv("DEFAULT_PARTIAL_REFUND_PERCENTAGE", str(PLATFORM_DEFAULT_POLICY.partial_refund_percentage))
)
DEFAULT_PROCESSING_FEE: Decimal = Decimal(
    os.getenv("DEFAULT_PROCESSING_FEE", str(PLATFORM_DEFAULT_POLICY.processing_fee_percentage))
)


def is_production() -> bool:
    return APP_ENV == "production"


def get_cors_origins() -> list[str]:
    if not CORS_ORIGINS:
        return []
    return [origin.strip() for origin in CORS_ORIGINS.split(",") if origin.strip()]


def get_default_policy() -> RefundPolicy:
    """Build the platform default policy from the environment. Invalid windows raise at startup."""
    return RefundPolicy.model_validate(
        {
            **PLATFORM_DEFAULT_POLICY.model_dump(),
            "refund_deadline_hours": DEFAULT_REFUND_DEADLINE_HOURS,
            "full_refund_deadline_hours": DEFAULT_FULL_REFUND_HOURS,
            "partial_refund_deadline_hours": DEFAULT_PARTIAL_REFUND_HOURS,
            "partial_refund_percentage": DEFAULT_PARTIAL_REFUND_PERCENTAGE,
            "processing_fee_percentage": DEFAULT_PROCESSING_FEE,
        }
    )
