"""shroud: ephemeral disclosure and identity-resolution core for a private chat client."""

__version__ = "0.1.0"
