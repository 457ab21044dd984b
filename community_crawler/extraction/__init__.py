"""Page extraction boundary."""
