"""
Shared Infrastructure Layer
Database engine, sessions and unit of work
"""
