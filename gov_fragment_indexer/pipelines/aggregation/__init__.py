"""Page-level roll-up of fragments."""
