"""Builders turning owner specs into desired Ingress objects."""
