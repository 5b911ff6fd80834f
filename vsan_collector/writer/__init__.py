"""
Output destinations for collected measurements.
"""
