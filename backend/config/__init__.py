"""
Worker configuration: YAML file plus environment overrides.
"""
