"""Renderings of unified reports and attack chains."""
