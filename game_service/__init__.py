"""Math Game API: registro, autenticación y ranking de puntuaciones."""

__version__ = "1.0.0"
