"""Authorization layer: ownership and visibility checks for user resources."""
