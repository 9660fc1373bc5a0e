"""HTTP routes for the notifications presentation surface."""
