"""Database access (asyncpg)."""
