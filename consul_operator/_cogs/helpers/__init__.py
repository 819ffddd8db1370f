"""
Small helpers with no knowledge of the operator's domain.
"""
