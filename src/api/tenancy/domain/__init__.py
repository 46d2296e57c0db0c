"""Domain layer for the tenancy bounded context.

Pure aggregates, value objects, domain events and exceptions. No
infrastructure or framework imports.
"""
