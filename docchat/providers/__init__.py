"""Concrete adapters for docchat's interfaces (docchat/interfaces/)."""
