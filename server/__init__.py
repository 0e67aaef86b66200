"""HTTP surface for the Kora match engine."""
