"""Socket gateway, presence and channel routing."""
