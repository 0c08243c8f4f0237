"""
Core Module

Configuration and FastAPI dependencies.
"""
