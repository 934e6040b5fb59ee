"""Map engine of the Aqueduct food dashboard."""
