from . import auth, dashboard, preferences, reference, tickets

__all__ = [
    "auth",
    "dashboard",
    "preferences",
    "reference",
    "tickets",
]
