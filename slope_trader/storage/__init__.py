"""
Persistence collaborators for purchase records.
"""
