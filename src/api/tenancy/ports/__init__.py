"""Ports for the tenancy bounded context.

Repository protocols and the error taxonomy shared by the application,
infrastructure and dependency layers.
"""
