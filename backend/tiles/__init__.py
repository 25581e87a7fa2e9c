"""
Tile serving: query, encode, and reload gating.
"""
