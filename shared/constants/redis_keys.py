class RedisKeys:
    """Centralised Redis key pattern definitions"""

    # Rate limiter / ban records
    BAN_RECORD = "ratelimit:record:{identifier}"

    @classmethod
    def ban_record_key(cls, identifier: str) -> str:
        """Generate the ban record key for a client-facing identifier."""
        if not identifier:
            raise ValueError("identifier must be a non-empty string")
        return cls.BAN_RECORD.format(identifier=identifier)
