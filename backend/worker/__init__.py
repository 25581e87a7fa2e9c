"""
Worker-side GeoJSON source and the thread it runs on.
"""
