"""HTTP surface for the upload queue."""
