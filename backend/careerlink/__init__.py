"""CareerLink realtime messaging and notification service."""
