"""Problem description, sample instances and the error taxonomy."""
