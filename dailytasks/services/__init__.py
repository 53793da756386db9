"""Service layer for dailytasks."""
