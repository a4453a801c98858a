"""
Shared Layer - Cross-Cutting Concerns
Actor and blood group value objects, database plumbing, errors and logging
"""
