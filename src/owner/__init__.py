"""Owner bot: upgrade request form handlers."""
