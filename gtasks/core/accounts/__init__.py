"""Account persistence and default resolution."""
