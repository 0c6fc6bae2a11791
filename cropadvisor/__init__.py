"""
cropadvisor - weather acquisition gateway and agronomic rule engine for maize growing sessions.
"""
__version__ = "0.1.0"
