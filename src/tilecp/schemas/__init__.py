"""JSON schemas bundled with tilecp."""
