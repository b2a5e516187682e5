"""
User Auth Service.
"""
