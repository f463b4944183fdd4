"""Services used around the instance lifecycle."""
