"""Column types shared by the content and permissions tables."""

from sqlalchemy import BigInteger, Integer

# BIGINT on PostgreSQL; SQLite only autoincrements a plain INTEGER primary key
Identifier = BigInteger().with_variant(Integer(), "sqlite")
