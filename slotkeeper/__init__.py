"""Volunteer slot allocation and registration-consistency service."""
