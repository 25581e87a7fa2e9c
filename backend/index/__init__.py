"""
Spatial index engines and the builder choosing between them.
"""
