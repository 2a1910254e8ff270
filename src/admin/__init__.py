"""Admin bot: pending payment confirmation handlers."""
