"""Branch overview for church leadership."""
