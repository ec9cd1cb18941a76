# API Routes Module
from willcraft.api.routes import (
    wills,
    billing,
    webhooks,
    account,
)

__all__ = [
    "wills",
    "billing",
    "webhooks",
    "account",
]
