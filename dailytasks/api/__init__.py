"""HTTP layer for dailytasks."""
