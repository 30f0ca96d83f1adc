"""Profiles module — user profiles and their Slack identities."""

from timeloo.profiles.models import Profile, UserSlackIntegration

__all__ = ["Profile", "UserSlackIntegration"]
