"""
Player Cache service.
"""
