from enum import Enum


class Environment(str, Enum):
    """Deployment environment types."""

    PRODUCTION = "production"
    STAGING = "staging"
    TESTING = "testing"
    DEVELOPMENT = "development"

    @classmethod
    def parse(cls, env: str) -> "Environment":
        """Resolve a free-form environment name, defaulting to production."""
        try:
            return cls(env.strip().lower())
        except ValueError:
            return cls.PRODUCTION

    @classmethod
    def is_production(cls, env: str) -> bool:
        return cls.parse(env) is cls.PRODUCTION
