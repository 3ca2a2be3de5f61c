"""Assessment modules of the academy."""
