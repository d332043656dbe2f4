"""
Services layer - core business logic.
"""
