"""
Geometry helpers: slippy tiles, Web Mercator projection, winding order.
"""
