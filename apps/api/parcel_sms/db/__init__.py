"""Database layer: declarative base, session factory, models and enums."""
