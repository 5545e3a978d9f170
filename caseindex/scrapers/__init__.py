"""HTTP clients for the court portals."""
