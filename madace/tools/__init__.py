"""Command line tools for the MADACE core."""
