"""submanager - subscription renewal tracking and Bark reminders."""

__version__ = "0.1.0"
