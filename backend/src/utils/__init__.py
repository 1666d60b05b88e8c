"""
Utility modules for the clinic billing application.

This package contains shared helpers used across the application: clinic
timezone handling and money normalization.
"""
