"""
Status constants for client profiles (written by onboarding, read by the engine).
"""

PROFILE_STATUS_PENDING_ONBOARDING = "pending_onboarding"
PROFILE_STATUS_ACTIVE = "active"
