"""Local services: token storage and onboarding checks."""
