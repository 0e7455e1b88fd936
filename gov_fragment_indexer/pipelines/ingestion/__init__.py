"""Generation-stamped synchronisation into the document store."""
