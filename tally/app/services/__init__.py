"""Business services for Tally."""
