"""Appliance energy tracking backend."""
