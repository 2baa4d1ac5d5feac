from app.integrations.sms import (
    DeliveryOutcome,
    LoggingNotifier,
    Notifier,
    TwilioSmsNotifier,
    build_notifier,
)

__all__ = [
    "DeliveryOutcome",
    "LoggingNotifier",
    "Notifier",
    "TwilioSmsNotifier",
    "build_notifier",
]
