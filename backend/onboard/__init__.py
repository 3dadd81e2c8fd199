"""Workspace onboarding: step registry, executor and the HTTP service around them."""
